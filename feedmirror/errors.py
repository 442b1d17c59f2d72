class MirrorError(Exception):
    """Base class for every failure raised by the mirror pipeline."""


class ConfigError(MirrorError):
    pass


class FetchError(MirrorError):
    """Network or HTTP status failure while talking to the upstream site."""


class ParseError(MirrorError):
    """The upstream feed document could not be parsed."""


class FormatError(MirrorError):
    """Payload does not look like a torrent metadata file."""


class BencodeError(MirrorError):
    pass


class DecodeError(BencodeError):
    pass


class EncodeError(BencodeError):
    pass


class PatchError(MirrorError):
    """Decoding or re-encoding failed while rewriting tracker URLs."""


class StorageError(MirrorError):
    pass


class SerializeError(MirrorError):
    pass
