""" Shared fixtures, an in-memory filesystem handler stands in for the real one """

import errno
import logging
import posixpath
from contextlib import contextmanager

import pytest

from volumedriver.local.driver import LocalDriver
from volumedriver.local.filesystem import FilesystemHandler

MOUNT_ROOT = "/mnt/volumes"

class FakeFilesystemHandler(FilesystemHandler):
    """ Directories and links kept in sets/dicts, every call is recorded

        errors maps an operation name ("mkdir_all", "symlink", ...) to an
        exception that call raises, stat_errors maps a path to the exception
        exists() raises for it.
    """
    def __init__(self):
        super(FakeFilesystemHandler, self).__init__()
        self.dirs = set(["/"])
        self.links = {}
        self.calls = []
        self.errors = {}
        self.stat_errors = {}
        self.umask_cleared = False

    def _call(self, operation, *args):
        self.calls.append((operation, args, self.umask_cleared))

        if operation in self.errors:
            raise self.errors[operation]

    def calls_to(self, operation):
        """ Recorded (args, umask_cleared) for operation """
        return [(args, cleared) for op, args, cleared in self.calls if op == operation]

    @contextmanager
    def cleared_umask(self):
        self.umask_cleared = True
        try:
            yield 0o022
        finally:
            self.umask_cleared = False

    def mkdir_all(self, path, mode=0o777):
        self._call("mkdir_all", path, mode)

        while path not in self.dirs:
            self.dirs.add(path)
            path = posixpath.dirname(path)

    def exists(self, path):
        self._call("exists", path)

        if path in self.stat_errors:
            raise self.stat_errors[path]

        if path in self.links:
            return self.links[path] in self.dirs

        return path in self.dirs

    def remove_all(self, path):
        self._call("remove_all", path)

        prefix = path.rstrip("/") + "/"
        self.dirs = set(d for d in self.dirs if d != path and not d.startswith(prefix))

    def remove(self, path):
        self._call("remove", path)

        if path not in self.links:
            raise FileNotFoundError(errno.ENOENT, "No such file or directory", path)

        del self.links[path]

    def symlink(self, target, link_path):
        self._call("symlink", target, link_path)

        if link_path in self.links or link_path in self.dirs:
            raise FileExistsError(errno.EEXIST, "File exists", link_path)

        self.links[link_path] = target

    def absolute(self, path):
        self._call("absolute", path)

        return posixpath.normpath(posixpath.join("/", path))

@pytest.fixture
def fake_fs():
    return FakeFilesystemHandler()

@pytest.fixture
def log():
    logger = logging.getLogger("local-volume-test")
    logger.setLevel(logging.DEBUG)
    return logger

@pytest.fixture
def state():
    return {}

@pytest.fixture
def driver(fake_fs, state, log):
    return LocalDriver(fake_fs, MOUNT_ROOT, state=state, logger=log)

@pytest.fixture
def unique_driver(fake_fs, state, log):
    return LocalDriver(fake_fs, MOUNT_ROOT, unique_volume_ids=True, state=state, logger=log)
