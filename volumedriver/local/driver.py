# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Local volume driver

    Volumes are plain directories under <mountDir>/_volumes, mounting one links
    it into <mountDir>/_mounts. Mounts are reference counted, the link only
    goes away when the last consumer unmounts.

    Every operation returns a DriverResponse, request errors are reported in
    response.err and never raised. A response with fatal=True means the
    environment is broken (mount root can't be created, undecodable unique
    volume id), the caller decides whether to give up.

    All operations hold one lock for their whole duration, the registry and
    the process umask are shared by every request thread.
"""

import logging
import threading

from .exceptions import OperationFailureError, UnrecoverableError
from .paths import PathResolver
from .registry import VolumeRecord, VolumeRegistry

MISSING_NAME = "Missing mandatory 'volume_name'"
NOT_MOUNTED = "Volume not previously mounted"

class DriverResponse(object):
    """ Outcome of a driver operation """
    # pylint: disable=too-many-arguments
    def __init__(self, err="", mountpoint=None, volume=None, volumes=None, implements=None, capabilities=None, fatal=False):
        self.err = err
        self.mountpoint = mountpoint
        self.volume = volume
        self.volumes = volumes
        self.implements = implements
        self.capabilities = capabilities
        self.fatal = fatal

    @property
    def ok(self):
        """ True if the operation succeeded """
        return not self.err

    def to_dict(self):
        """ Docker volume plugin protocol response body """
        resp = {}

        if self.implements is not None:
            resp['Implements'] = self.implements

        if self.capabilities is not None:
            resp['Capabilities'] = self.capabilities

        if self.mountpoint is not None:
            resp['Mountpoint'] = self.mountpoint

        if self.volume is not None:
            resp['Volume'] = self.volume

        if self.volumes is not None:
            resp['Volumes'] = self.volumes

        resp['Err'] = self.err

        return resp

    def __str__(self):
        return "%s(%s)" % (self.__class__.__name__, str(self.__dict__))

class LocalDriver(object):
    """ Volume lifecycle: create, mount, unmount, path, get, list, remove """
    # pylint: disable=too-many-arguments
    def __init__(self, fs_handler, mount_root, unique_volume_ids=False, state=None, logger=None):
        self.fs_handler = fs_handler
        self.registry = VolumeRegistry(state)
        self.paths = PathResolver(fs_handler, mount_root, unique_volume_ids)
        self.lock = threading.Lock()
        self.log = logger or logging.getLogger("local-volume")

    def _run(self, session, log, func, *args):
        """ Run func under the driver lock, turn exceptions into a response """
        log = (log or self.log).getChild(session)

        with self.lock:
            try:
                return func(log, *args)
            except OperationFailureError as op_err:
                return DriverResponse(err=op_err.message)
            except UnrecoverableError as err:
                log.critical("unrecoverable: %s", err.message)
                return DriverResponse(err=err.message, fatal=True)

    def activate(self, log=None): # pylint: disable=unused-argument
        """ Plugin.Activate """
        return DriverResponse(implements=["VolumeDriver"])

    def capabilities(self, log=None): # pylint: disable=unused-argument
        """ VolumeDriver.Capabilities, volumes only exist on this host """
        return DriverResponse(capabilities={"Scope": "local"})

    def create(self, name, log=None):
        """ Register name and create its backing directory, no-op if it exists """
        return self._run("create", log, self._create, name)

    def mount(self, name, log=None):
        """ Link the volume into _mounts (first mount only), bump the count """
        return self._run("mount", log, self._mount, name)

    def unmount(self, name, log=None):
        """ Drop one reference, remove the link with the last one """
        return self._run("unmount", log, self._unmount_request, name)

    def path(self, name, log=None):
        """ Current mountpoint of a mounted volume """
        return self._run("path", log, self._path, name)

    def get(self, name, log=None):
        """ Name and mountpoint of one volume """
        return self._run("get", log, self._get, name)

    def list(self, log=None):
        """ Name and mountpoint of every volume """
        return self._run("list", log, self._list)

    def remove(self, name, log=None):
        """ Unmount once if mounted, delete the backing directory and forget the volume

            NOTE: only a single reference is dropped. Removing a volume that
            is mounted more than once deletes its directory while the mount
            link stays behind.
        """
        return self._run("remove", log, self._remove, name)

    def _create(self, log, name):
        if not name:
            raise OperationFailureError(MISSING_NAME)

        self.paths.check_name(name, log)

        if name in self.registry:
            log.debug("volume %s already exists", name)
            return DriverResponse()

        log.info("creating-volume: volume_name: %s", name)

        create_dir = self.paths.storage_dir(name, log)

        log.info("creating-volume-folder: %s", create_dir)

        try:
            with self.fs_handler.cleared_umask():
                self.fs_handler.mkdir_all(create_dir, 0o777)
        except OSError as err:
            log.critical("failed-creating-path: %s: %s", create_dir, err)
            raise UnrecoverableError("Failed creating path {}: {}".format(create_dir, err))

        self.registry.add(VolumeRecord(name))

        return DriverResponse()

    def _mount(self, log, name):
        if not name:
            raise OperationFailureError(MISSING_NAME)

        vol = self.registry.get(name)

        if vol is None:
            raise OperationFailureError("Volume '{}' must be created before being mounted".format(name))

        volume_path = self.paths.storage_dir(vol.name, log)

        try:
            exists = self.fs_handler.exists(volume_path)
        except OSError as err:
            log.error("mount-volume-failed: %s", err)
            raise OperationFailureError(str(err))

        if not exists:
            log.error("mount-volume-failed: volume '%s' is missing (%s)", name, volume_path)
            raise OperationFailureError("Volume '{}' is missing".format(name))

        mount_path = self.paths.mount_dir(vol.name, log)

        log.info("mounting-volume: id: %s mountpoint: %s", vol.name, mount_path)

        if vol.mount_count < 1:
            log.info("link: %s -> %s", mount_path, volume_path)

            try:
                with self.fs_handler.cleared_umask():
                    self.fs_handler.symlink(volume_path, mount_path)
            except OSError as err:
                log.error("mount-volume-failed: %s", err)
                raise OperationFailureError("Error mounting volume: {}".format(err))

            vol.mountpoint = mount_path

        vol.mount_count += 1

        log.info("volume-mounted: name: %s count: %d", vol.name, vol.mount_count)

        return DriverResponse(mountpoint=vol.mountpoint)

    def _mounted_path(self, log, name):
        """ Mountpoint of name, raise if missing or not mounted """
        if not name:
            raise OperationFailureError(MISSING_NAME)

        vol = self.registry.get(name)

        if vol is None:
            log.error("failed-no-such-volume-found: %s", name)
            raise OperationFailureError("Volume '{}' not found".format(name))

        if vol.mountpoint == "":
            log.error("failed-mountpoint-not-assigned: %s", name)
            raise OperationFailureError(NOT_MOUNTED)

        return vol.mountpoint

    def _path(self, log, name):
        return DriverResponse(mountpoint=self._mounted_path(log, name))

    def _unmount_request(self, log, name):
        return self._unmount(log, name, self._mounted_path(log, name))

    def _unmount(self, log, name, mount_path):
        """ One unmount step, shared by unmount and remove """
        try:
            exists = self.fs_handler.exists(mount_path)
        except OSError as err:
            log.error("failed-retrieving-mount-info: %s: %s", mount_path, err)
            raise OperationFailureError("Error establishing whether volume exists")

        if not exists:
            log.error("failed-mountpoint-not-found: %s", mount_path)
            raise OperationFailureError("Volume {} does not exist (path: {}), nothing to do!".format(name, mount_path))

        vol = self.registry.get(name)
        vol.mount_count -= 1

        if vol.mount_count > 0:
            log.info("volume-still-in-use: name: %s count: %d", name, vol.mount_count)
            return DriverResponse()

        log.info("unmount-volume-folder: %s", mount_path)

        try:
            self.fs_handler.remove(mount_path)
        except OSError as err:
            log.error("unmount-failed: %s", err)
            # link is still there, so is the reference
            vol.mount_count += 1
            raise OperationFailureError("Error unmounting volume: {}".format(err))

        vol.mountpoint = ""

        log.info("unmounted-volume: %s", name)

        return DriverResponse()

    def _get(self, log, name):
        vol = self.registry.get(name)

        if vol is None:
            raise OperationFailureError("Volume not found")

        log.info("getting-volume: %s", name)

        return DriverResponse(volume=vol.info())

    def _list(self, log):
        volumes = [vol.info() for vol in self.registry.records()]

        log.debug("listing %d volume(s)", len(volumes))

        return DriverResponse(volumes=volumes)

    def _remove(self, log, name):
        if not name:
            raise OperationFailureError(MISSING_NAME)

        vol = self.registry.get(name)

        if vol is None:
            log.error("failed-volume-removal: volume %s not found", name)
            raise OperationFailureError("Volume '{}' not found".format(name))

        if vol.mountpoint != "":
            self._unmount(log, name, vol.mountpoint)

        volume_path = self.paths.storage_dir(vol.name, log)

        log.info("remove-volume-folder: %s", volume_path)

        try:
            self.fs_handler.remove_all(volume_path)
        except OSError as err:
            log.error("failed-removing-volume: %s", err)
            raise OperationFailureError("Failed removing mount path: {}".format(err))

        log.info("removing-volume: %s", name)

        self.registry.delete(name)

        return DriverResponse()
