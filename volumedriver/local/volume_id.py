# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Unique volume ids

    With unique volume ids turned on the volume name handed to the driver is
    "<prefix>_<suffix>". The prefix names the shared volume (and so its storage
    directory), the suffix tells the consumers of that volume apart. Any "_"
    inside prefix or suffix is escaped as "=".

        >>> VolumeId("some-volume-id", "some-container-id").unique_id
        'some-volume-id_some-container-id'
        >>> VolumeId.decode("my=volume_abc").prefix
        'my_volume'
"""

from .exceptions import VolumeIdDecodeError

SEPARATOR = "_"
ESCAPE = "="

class VolumeId(object):
    """ Prefix/suffix pair """
    def __init__(self, prefix, suffix):
        self.prefix = prefix
        self.suffix = suffix

    @property
    def unique_id(self):
        """ Encoded form of this id """
        return SEPARATOR.join([
            self.prefix.replace(SEPARATOR, ESCAPE),
            self.suffix.replace(SEPARATOR, ESCAPE),
        ])

    @classmethod
    def decode(cls, encoded):
        """ Split encoded id, raise VolumeIdDecodeError when it isn't one """
        tokens = encoded.split(SEPARATOR)

        if len(tokens) != 2:
            raise VolumeIdDecodeError("Unable to decode unique volume id: '{}'".format(encoded))

        return cls(tokens[0].replace(ESCAPE, SEPARATOR), tokens[1].replace(ESCAPE, SEPARATOR))

    def __eq__(self, other):
        return isinstance(other, VolumeId) and (self.prefix, self.suffix) == (other.prefix, other.suffix)

    def __hash__(self):
        return hash((self.prefix, self.suffix))

    def __str__(self):
        return "%s(%s)" % (self.__class__.__name__, str(self.__dict__))
