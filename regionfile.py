'''
Created on Jul 22, 2011

@author: Rio

A region holds up to 32x32 chunks. It starts with two 4096-byte tables:

    locations   1024 big-endian ints, (sector offset << 8) | sector count
    timestamps  1024 big-endian ints, last modification time of each chunk

followed by the chunk records, each one starting on a sector boundary.
Offsets count sectors from the start of the file, so the first record can
be no earlier than sector 2. A record is a 4-byte length (covering the
compression byte and the payload), a 1-byte compression scheme and the
compressed NBT payload, zero padded up to a whole sector.

Region works on an in-memory copy of the file; read it, decode() it, and
write encode() back out when done.
'''

from logging import getLogger
import struct
import time

from numpy import frombuffer

from chunkcompress import VERSION_DEFLATE, compress, decompress
from level import Chunk
from regionbase import ChunkTooLarge, RecordOutOfBounds, TruncatedHeader, UnallocatedChunk

log = getLogger(__name__)
warn, error, info, debug = log.warning, log.error, log.info, log.debug

__all__ = ["Region", "decodeRecord", "encodeRecord"]

SECTOR_BYTES = 4096
SECTOR_INTS = SECTOR_BYTES // 4
CHUNK_HEADER_SIZE = 5


def decodeRecord(data):
    """ Split a record into (scheme, payload). data is the record's sector span. """
    if len(data) < CHUNK_HEADER_SIZE:
        raise RecordOutOfBounds("Record of {0} bytes is too short for its header".format(len(data)))

    length, scheme = struct.unpack_from(">IB", data)
    if length == 0 or length + 4 > len(data):
        raise RecordOutOfBounds("Record length {0} does not fit in {1} bytes".format(length, len(data)))

    return scheme, bytes(data[CHUNK_HEADER_SIZE:length + 4])


def encodeRecord(raw, scheme=VERSION_DEFLATE, level=1):
    payload = compress(raw, scheme, level)
    return struct.pack(">IB", len(payload) + 1, scheme) + payload


class Region(object):
    SECTOR_BYTES = SECTOR_BYTES
    SECTOR_INTS = SECTOR_INTS
    HEADER_SECTORS = 2
    CHUNK_HEADER_SIZE = CHUNK_HEADER_SIZE
    MAX_SECTORS = 255

    compressLevel = 1  # zlib level for saved chunks. 1 is fastest.
    reuseFreeSectors = True  # if False, records that outgrow their sectors always go to the end of the file

    def __init__(self, buf, regionCoords=(0, 0)):
        headerSize = self.SECTOR_BYTES * self.HEADER_SECTORS
        if len(buf) < headerSize:
            raise TruncatedHeader("Region data is {0} bytes, the header alone needs {1}".format(len(buf), headerSize))

        self.regionCoords = tuple(regionCoords)
        self.locations = frombuffer(buf, '>u4', self.SECTOR_INTS, 0).copy()
        self.timestamps = frombuffer(buf, '>u4', self.SECTOR_INTS, self.SECTOR_BYTES).copy()
        self.data = bytearray(buf[headerSize:])

        self._sectorUsers = None

    @classmethod
    def decode(cls, buf, x, z):
        """ Returns None if buf is too short to be a region. """
        try:
            return cls(buf, (x, z))
        except TruncatedHeader as e:
            debug("Not a region: {0}".format(e))
            return None

    def encode(self):
        return self.locations.tobytes() + self.timestamps.tobytes() + bytes(self.data)

    @property
    def x(self):
        return self.regionCoords[0]

    @property
    def z(self):
        return self.regionCoords[1]

    def __str__(self):
        return "Region {0} with {1}/{2} sectors used and {3} chunks present".format(
            self.regionCoords, self.usedSectors, self.sectorCount, self.chunkCount)

    # Location table

    @staticmethod
    def _index(cx, cz):
        return (cx & 0x1f) + (cz & 0x1f) * 32

    def getOffset(self, cx, cz):
        return int(self.locations[self._index(cx, cz)])

    def setOffset(self, cx, cz, offset):
        """ Edit the location table directly. Sector use is recounted on the next write. """
        self._setOffset(cx, cz, offset)
        self._sectorUsers = None

    def _setOffset(self, cx, cz, offset):
        # the allocator keeps sectorUsers in step itself
        self.locations[self._index(cx, cz)] = offset

    def locate(self, cx, cz):
        """ Returns (sector offset, sector count) of the chunk's record. A count
        of zero means the chunk is not present. """
        offset = self.getOffset(cx, cz)
        return offset >> 8, offset & 0xff

    def getTimestamp(self, cx, cz):
        return int(self.timestamps[self._index(cx, cz)])

    def containsChunk(self, cx, cz):
        return self.locate(cx, cz)[1] > 0

    @property
    def allChunks(self):
        """ Absolute coordinates of every chunk present in this region. """
        rx, rz = self.regionCoords
        for index, offset in enumerate(self.locations):
            if offset & 0xff:
                yield (index & 0x1f) + (rx << 5), (index >> 5) + (rz << 5)

    @property
    def chunkCount(self):
        return int(((self.locations & 0xff) > 0).sum())

    # Sectors

    @property
    def sectorCount(self):
        return self.HEADER_SECTORS + (len(self.data) + self.SECTOR_BYTES - 1) // self.SECTOR_BYTES

    @property
    def usedSectors(self):
        return sum(1 for users in self.sectorUsers if users)

    def _inBounds(self, sectorStart, sectorCount):
        return sectorStart >= self.HEADER_SECTORS and sectorStart + sectorCount <= self.sectorCount

    @property
    def sectorUsers(self):
        """ Number of chunks claiming each sector. Built on first use; the two
        header sectors always count as used. """
        if self._sectorUsers is None:
            users = [0] * self.sectorCount
            users[0:self.HEADER_SECTORS] = [1] * self.HEADER_SECTORS

            for index, offset in enumerate(self.locations):
                sectorStart = int(offset) >> 8
                sectorCount = int(offset) & 0xff
                if not sectorCount:
                    continue
                if not self._inBounds(sectorStart, sectorCount):
                    warn("Region {0} offset table points to sectors {1}:{2} for index {3}, outside of the file".format(
                        self.regionCoords, sectorStart, sectorStart + sectorCount, index))
                    continue
                for i in range(sectorStart, sectorStart + sectorCount):
                    users[i] += 1

            self._sectorUsers = users
        return self._sectorUsers

    def _sectorSlice(self, sectorStart, sectorCount):
        start = (sectorStart - self.HEADER_SECTORS) * self.SECTOR_BYTES
        return slice(start, start + sectorCount * self.SECTOR_BYTES)

    def _padData(self):
        # a file cut short inside its last sector is padded out to the sector boundary
        remainder = len(self.data) % self.SECTOR_BYTES
        if remainder:
            self.data.extend(bytes(self.SECTOR_BYTES - remainder))

    def _releaseSectors(self, sectorStart, sectorCount):
        users = self.sectorUsers
        for i in range(sectorStart, sectorStart + sectorCount):
            users[i] -= 1
            if not users[i]:
                self.data[self._sectorSlice(i, 1)] = bytes(self.SECTOR_BYTES)

    def _claimSectors(self, sectorStart, sectorCount):
        users = self.sectorUsers
        for i in range(sectorStart, sectorStart + sectorCount):
            users[i] += 1

    def _findFreeRun(self, sectorsNeeded):
        users = self.sectorUsers
        runStart = runLength = 0
        for i in range(self.HEADER_SECTORS, len(users)):
            if users[i]:
                runLength = 0
                continue
            if not runLength:
                runStart = i
            runLength += 1
            if runLength >= sectorsNeeded:
                return runStart
        return None

    def _growSectors(self, sectorsNeeded):
        sectorNumber = len(self.sectorUsers)
        self.data.extend(bytes(sectorsNeeded * self.SECTOR_BYTES))
        self.sectorUsers.extend([0] * sectorsNeeded)
        return sectorNumber

    def _writeSectors(self, sectorNumber, sectorCount, record):
        span = sectorCount * self.SECTOR_BYTES
        self.data[self._sectorSlice(sectorNumber, sectorCount)] = record + bytes(span - len(record))

    # Records

    def _readRecord(self, cx, cz):
        sectorStart, numSectors = self.locate(cx, cz)
        if numSectors == 0:
            raise UnallocatedChunk("Chunk {0} is not present in region {1}".format((cx, cz), self.regionCoords))

        if not self._inBounds(sectorStart, numSectors):
            raise RecordOutOfBounds("Chunk {0} points to sectors {1}:{2}, region {3} has {4}".format(
                (cx, cz), sectorStart, sectorStart + numSectors, self.regionCoords, self.sectorCount))

        return self.data[self._sectorSlice(sectorStart, numSectors)]

    def getChunk(self, cx, cz):
        scheme, payload = decodeRecord(self._readRecord(cx, cz))
        data = decompress(scheme, payload)
        return Chunk.fromBytes(data, cx, cz)

    def setChunk(self, chunk):
        cx, cz = chunk.chunkPosition
        if (cx >> 5, cz >> 5) != self.regionCoords:
            debug("Saving chunk {0} into region {1} at local position {2}".format(
                (cx, cz), self.regionCoords, (cx & 0x1f, cz & 0x1f)))

        record = encodeRecord(chunk.toBytes(), VERSION_DEFLATE, self.compressLevel)
        self._saveRecord(cx, cz, record)

    def _saveRecord(self, cx, cz, record):
        sectorsNeeded = (len(record) + self.SECTOR_BYTES - 1) // self.SECTOR_BYTES
        if sectorsNeeded > self.MAX_SECTORS:
            raise ChunkTooLarge("Chunk {0} needs {1} sectors, a region record can hold at most {2}".format(
                (cx, cz), sectorsNeeded, self.MAX_SECTORS))

        self._padData()
        sectorNumber, sectorsAllocated = self.locate(cx, cz)
        allocated = sectorsAllocated > 0 and self._inBounds(sectorNumber, sectorsAllocated)

        if allocated and sectorsAllocated >= sectorsNeeded:
            debug("REGION SAVE {0},{1} rewriting {2}b".format(cx, cz, len(record)))
            self._writeSectors(sectorNumber, sectorsNeeded, record)
            self._releaseSectors(sectorNumber + sectorsNeeded, sectorsAllocated - sectorsNeeded)

        else:
            # we need to allocate new sectors

            if allocated:
                self._releaseSectors(sectorNumber, sectorsAllocated)

            runStart = self._findFreeRun(sectorsNeeded) if self.reuseFreeSectors else None
            if runStart is not None:
                debug("REGION SAVE {0},{1}, reusing {2}b at sector {3}".format(cx, cz, len(record), runStart))
                sectorNumber = runStart
            else:
                # no free space large enough found -- we need to grow the data
                debug("REGION SAVE {0},{1}, growing by {2}b".format(cx, cz, len(record)))
                sectorNumber = self._growSectors(sectorsNeeded)

            self._writeSectors(sectorNumber, sectorsNeeded, record)
            self._claimSectors(sectorNumber, sectorsNeeded)

        self._setOffset(cx, cz, sectorNumber << 8 | sectorsNeeded)
        self.timestamps[self._index(cx, cz)] = int(time.time())

    def deleteChunk(self, cx, cz):
        sectorStart, sectorCount = self.locate(cx, cz)
        if sectorCount and self._inBounds(sectorStart, sectorCount):
            self._releaseSectors(sectorStart, sectorCount)

        self._setOffset(cx, cz, 0)
        self.timestamps[self._index(cx, cz)] = 0
