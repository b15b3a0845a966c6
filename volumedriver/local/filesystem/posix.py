# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Plain directories and symlinks on the local filesystem """

import sys
import logging
import os
import shutil
import threading
from contextlib import contextmanager

from . import FilesystemHandler

# umask is process wide, only one thread may hold it cleared at a time
_UMASK_LOCK = threading.RLock()

class FilesystemHandlerPosix(FilesystemHandler):
    """ Implements directory/symlink functions for local volumes """
    def __init__(self, logger=None, log_stream=None):
        if logger:
            self.log = logger
        else:
            self.log = logging.getLogger("local-volume-posix")

            if not self.log.handlers:
                handler = logging.StreamHandler(stream=log_stream or sys.stderr)
                handler.setFormatter(logging.Formatter('%(name)s %(process)d %(levelname)s %(message)s'))
                self.log.setLevel(logging.DEBUG)
                self.log.addHandler(handler)

        super(FilesystemHandlerPosix, self).__init__()

    @contextmanager
    def cleared_umask(self):
        """ Clear umask for the duration of the block, restore it after """
        with _UMASK_LOCK:
            orig = os.umask(0)
            try:
                yield orig
            finally:
                os.umask(orig)

    def mkdir_all(self, path, mode=0o777):
        """ Create path and parents, mode applies as given (umask cleared) """
        self.log.debug("mkdir_all: %s (%o)", path, mode)

        with self.cleared_umask():
            os.makedirs(path, mode=mode, exist_ok=True)

    def exists(self, path):
        """ stat(2) path, follows symlinks so a dangling link does not exist """
        try:
            os.stat(path)
        except FileNotFoundError:
            return False

        return True

    def remove_all(self, path):
        """ Remove directory tree, a missing tree is fine """
        self.log.debug("remove_all: %s", path)

        if os.path.islink(path) or os.path.isfile(path):
            os.remove(path)
            return

        try:
            shutil.rmtree(path)
        except FileNotFoundError:
            pass

    def remove(self, path):
        """ Remove single entry """
        self.log.debug("remove: %s", path)

        if os.path.isdir(path) and not os.path.islink(path):
            os.rmdir(path)
        else:
            os.remove(path)

    def symlink(self, target, link_path):
        """ Link link_path -> target, then open up permissions on the target """
        self.log.debug("symlink: %s -> %s", link_path, target)

        with self.cleared_umask():
            os.symlink(target, link_path)

            # chmod follows the link, so this lands on the volume directory
            os.chmod(link_path, 0o777)

    def absolute(self, path):
        """ Absolute path, not resolving symlinks """
        return os.path.abspath(path)
