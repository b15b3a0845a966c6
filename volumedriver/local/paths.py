# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Where volumes live on disk

    Relative to the configured mount root R:

        R/_volumes/<name or unique id prefix>/   backing directory
        R/_mounts/<name>                         symlink to the backing directory

    The mount name always uses the raw volume name so every consumer of a
    shared (unique id) volume gets its own link into the same directory.

    Names (and unique id prefixes) must be a single path component, anything
    that could land outside R/_volumes or R/_mounts is refused.
"""

import os

from .exceptions import OperationFailureError, UnrecoverableError, VolumeIdDecodeError
from .volume_id import VolumeId

VOLUMES_ROOT_DIR = "_volumes"
MOUNTS_ROOT_DIR = "_mounts"

def single_component(name):
    """ True if name can only ever be one entry inside a directory """
    if not isinstance(name, str) or name in ("", ".", ".."):
        return False

    if "\x00" in name or os.sep in name:
        return False

    return os.altsep is None or os.altsep not in name

class PathResolver(object):
    """ Compute storage and mount directories for volume ids """
    def __init__(self, fs_handler, mount_root, unique_volume_ids=False):
        self.fs_handler = fs_handler
        self.mount_root = mount_root
        self.unique_volume_ids = unique_volume_ids

    def _root(self, log, sub_dir):
        """ Absolute R/sub_dir, created world writable if missing """
        try:
            root = self.fs_handler.absolute(self.mount_root)
        except OSError as err:
            log.critical("abs-failed: %s: %s", self.mount_root, err)
            raise UnrecoverableError("Unable to resolve mount root {}: {}".format(self.mount_root, err))

        root = os.path.join(root, sub_dir)

        try:
            with self.fs_handler.cleared_umask():
                self.fs_handler.mkdir_all(root, 0o777)
        except OSError as err:
            log.critical("failed-creating-path: %s: %s", root, err)
            raise UnrecoverableError("Failed creating path {}: {}".format(root, err))

        return root

    def _join(self, root, name, volume_id, log):
        """ root/name, refusing anything that isn't directly below root """
        path = os.path.join(root, name) if single_component(name) else None

        if path is None or os.path.dirname(path) != root:
            log.error("invalid-volume-name: %r (%r)", volume_id, name)
            raise OperationFailureError("Invalid volume name '{}'".format(volume_id))

        return path

    def check_name(self, volume_id, log):
        """ Raise OperationFailureError unless volume_id and its storage name are usable """
        if not single_component(volume_id):
            log.error("invalid-volume-name: %r", volume_id)
            raise OperationFailureError("Invalid volume name '{}'".format(volume_id))

        if not single_component(self.resolve_name(volume_id, log)):
            log.error("invalid-volume-name: %r resolves outside the volumes directory", volume_id)
            raise OperationFailureError("Invalid volume name '{}'".format(volume_id))

    def resolve_name(self, volume_id, log):
        """ Name of the storage directory for volume_id """
        if not self.unique_volume_ids:
            return volume_id

        try:
            return VolumeId.decode(volume_id).prefix
        except VolumeIdDecodeError as err:
            log.critical("decode-unique-volume-id-failed: %s", err.message)
            raise UnrecoverableError(err.message)

    def storage_dir(self, volume_id, log):
        """ R/_volumes/<resolved name> """
        volumes_root = self._root(log, VOLUMES_ROOT_DIR)

        return self._join(volumes_root, self.resolve_name(volume_id, log), volume_id, log)

    def mount_dir(self, volume_id, log):
        """ R/_mounts/<volume_id> """
        mounts_root = self._root(log, MOUNTS_ROOT_DIR)

        return self._join(mounts_root, volume_id, volume_id, log)
