"""
Compression schemes used for chunk records inside a region file. The scheme
is the single byte that follows a record's length field.
"""

import gzip
from logging import getLogger
import zlib

from regionbase import DecompressionFailure

log = getLogger(__name__)
warn, error, info, debug = log.warning, log.error, log.info, log.debug

VERSION_GZIP = 1
VERSION_DEFLATE = 2
VERSION_NONE = 3

__all__ = ["VERSION_GZIP", "VERSION_DEFLATE", "VERSION_NONE", "gunzip", "gzipped", "inflate", "deflate", "compress", "decompress"]


def gunzip(data):
    return gzip.decompress(data)


def gzipped(data, level=1):
    return gzip.compress(data, compresslevel=level, mtime=0)


def deflate(data, level=1):
    return zlib.compress(data, level)


def inflate(data):
    return zlib.decompress(data)


def decompress(scheme, data):
    """Return the raw bytes of a record payload compressed with `scheme`.
    Schemes other than gzip and zlib are taken to be uncompressed."""
    try:
        if scheme == VERSION_GZIP:
            return gunzip(data)
        if scheme == VERSION_DEFLATE:
            return inflate(data)
    except (zlib.error, OSError, EOFError) as e:
        raise DecompressionFailure("Failed to decompress {0} bytes with scheme {1}: {2}".format(len(data), scheme, e))

    if scheme != VERSION_NONE:
        debug("Unknown compression scheme {0}, reading payload as uncompressed".format(scheme))
    return bytes(data)


def compress(data, scheme=VERSION_DEFLATE, level=1):
    if scheme == VERSION_GZIP:
        return gzipped(data, level)
    if scheme == VERSION_DEFLATE:
        return deflate(data, level)
    if scheme == VERSION_NONE:
        return bytes(data)

    raise ValueError("Unknown compression scheme: {0}".format(scheme))
