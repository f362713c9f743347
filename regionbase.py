'''
Created on Jul 22, 2011

@author: Rio
'''

from collections import namedtuple


class RegionError(Exception):
    pass


class RegionMalformed(RegionError):
    pass


class TruncatedHeader(RegionMalformed):
    """The buffer is too short to hold the location and timestamp tables."""


class ChunkNotPresent(RegionError):
    pass


class UnallocatedChunk(ChunkNotPresent):
    """The chunk's location slot has a sector count of zero. The chunk was never
    generated, or was deleted."""


class ChunkMalformed(ChunkNotPresent):
    pass


class RecordOutOfBounds(ChunkMalformed):
    pass


class DecompressionFailure(ChunkMalformed):
    pass


class MalformedTree(ChunkMalformed):
    pass


class ChunkTooLarge(RegionError):
    pass


# A key found in a chunk's tree that has no typed field. Collected and
# returned next to the typed result, never raised.
UnknownKey = namedtuple("UnknownKey", "name tag")
