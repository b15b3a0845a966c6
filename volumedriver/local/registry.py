# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" In-memory volume bookkeeping, not thread safe (LocalDriver locks around it) """

class VolumeRecord(object):
    """ One logical volume """
    def __init__(self, name, mountpoint="", mount_count=0):
        self.name = name
        self.mountpoint = mountpoint
        self.mount_count = mount_count

    def info(self):
        """ Volume as reported to docker """
        return {"Name": self.name, "Mountpoint": self.mountpoint}

    def __str__(self):
        return "%s(%s)" % (self.__class__.__name__, str(self.__dict__))

class VolumeRegistry(object):
    """ name -> VolumeRecord """
    def __init__(self, state=None):
        self.volumes = state if state is not None else {}

    def get(self, name):
        """ Record for name or None """
        return self.volumes.get(name)

    def add(self, record):
        """ Insert record unless the name is taken, return whatever is stored """
        return self.volumes.setdefault(record.name, record)

    def delete(self, name):
        """ Drop name, returns the removed record (or None) """
        return self.volumes.pop(name, None)

    def records(self):
        """ Snapshot of all records, no particular order """
        return list(self.volumes.values())

    def __contains__(self, name):
        return name in self.volumes

    def __len__(self):
        return len(self.volumes)
