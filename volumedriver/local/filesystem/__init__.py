# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Filesystem handler for the local volume driver

    The driver never touches the filesystem directly, everything goes
    through a handler so tests can substitute their own.
"""

from .. import exceptions

class FilesystemHandler(object):
    """ Base filesystem handler """
    def __init__(self):
        pass

    def mkdir_all(self, path, mode=0o777):
        """ Create path and any missing parents """
        raise NotImplementedError

    def exists(self, path):
        """ True if path exists, False if not, raise OSError if we can't tell """
        raise NotImplementedError

    def remove_all(self, path):
        """ Remove path and everything below it """
        raise NotImplementedError

    def remove(self, path):
        """ Remove a single entry (i.e. a mount symlink) """
        raise NotImplementedError

    def symlink(self, target, link_path):
        """ Create link_path pointing at target """
        raise NotImplementedError

    def absolute(self, path):
        """ Return absolute version of path """
        raise NotImplementedError

    def cleared_umask(self):
        """ Context manager, umask is 0 inside the block """
        raise NotImplementedError

def get_handler(fs_type, log=None):
    """ Return the handler object """
    if fs_type and fs_type.lower() == "posix":
        from .posix import FilesystemHandlerPosix
        return FilesystemHandlerPosix(log)

    raise exceptions.FSHandlerFSTypeNotSupported("%s fileystem type is not supported" % fs_type)
