# Copyright (c) 2017 Karl Bunch <karlbunch@karlbunch.com>

""" Exceptions used by package """

class FSHandlerFSTypeNotSupported(Exception):
    """ Unsupported fileystem type """
    def __init__(self, message=None):
        self.message = message
        super(FSHandlerFSTypeNotSupported, self).__init__(message)

class VolumeIdDecodeError(Exception):
    """ Encoded unique volume id could not be decoded """
    def __init__(self, message=None):
        self.message = message
        super(VolumeIdDecodeError, self).__init__(message)

class UnrecoverableError(Exception):
    """ Broken environment or configuration, retrying will not help """
    def __init__(self, message=None):
        self.message = message
        super(UnrecoverableError, self).__init__(message)

class ConfigError(Exception):
    """ Invalid configuration file or flags """
    def __init__(self, message=None):
        self.message = message
        super(ConfigError, self).__init__(message)

class OperationFailureError(Exception):
    """ Raised when an operation fails """
    def __init__(self, message):
        self.message = message
        super(OperationFailureError, self).__init__(message)

class OperationInvalidOptionsError(Exception):
    """ Raised when a request body can't be used """
    def __init__(self, message):
        self.message = message
        super(OperationInvalidOptionsError, self).__init__(message)
