from kubeprov.cli import run

run()
