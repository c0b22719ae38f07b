from . import config, master, node

__all__ = ['config', 'master', 'node']
