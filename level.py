'''
Created on Jul 22, 2011

@author: Rio

Typed views of a chunk's NBT tree. A Chunk keeps the generic Level compound
exactly as it was read; Level, Section and HeightMap are projections of it
that can be read with fromTree() and written back with toTree().
'''

from copy import deepcopy
from logging import getLogger

from numpy import array, array_equal, uint8, uint16, zeros

import nbtree
from nbtree import (
    NBTFormatError,
    TAG_Byte,
    TAG_Byte_Array,
    TAG_Compound,
    TAG_Int,
    TAG_Int_Array,
    TAG_List,
    TAG_Long,
    TAG_Long_Array,
    TAG_Short,
)
from regionbase import MalformedTree, UnknownKey

log = getLogger(__name__)
warn, error, info, debug = log.warning, log.error, log.info, log.debug

__all__ = ["Section", "Level", "HeightMap", "Chunk", "unpackNibbleArray", "packNibbleArray"]

SECTION_BLOCKS = 16 * 16 * 16


def unpackNibbleArray(dataArray):
    """ Split each byte of a packed nibble array into two entries, low nibble first. """
    dataArray = array(dataArray, uint8)
    unpackedData = zeros(len(dataArray) * 2, dtype='uint8')

    unpackedData[::2] = dataArray & 0xf
    unpackedData[1::2] = dataArray >> 4
    return unpackedData


def packNibbleArray(unpackedData):
    packedData = array(unpackedData, uint8).reshape(-1, 2)
    packedData[:, 1] <<= 4
    packedData[:, 1] |= packedData[:, 0] & 0xf
    return array(packedData[:, 1])


def _expect(name, tag, *tagTypes):
    # exact match, TAG_Int_Array and TAG_Long_Array subclass TAG_Byte_Array
    if type(tag) not in tagTypes:
        raise MalformedTree("Key {0} should be {1}, found {2}".format(
            name, " or ".join(t.__name__ for t in tagTypes), tag.__class__.__name__))
    return tag


def readInt(name, tag):
    return _expect(name, tag, TAG_Byte, TAG_Short, TAG_Int, TAG_Long).value


def readBool(name, tag):
    return bool(_expect(name, tag, TAG_Byte).value)


def readByteArray(name, tag):
    return array(_expect(name, tag, TAG_Byte_Array).value)


def readIntArray(name, tag):
    return array(_expect(name, tag, TAG_Int_Array).value)


def readLongArray(name, tag):
    return array(_expect(name, tag, TAG_Long_Array).value)


def readCompoundList(name, tag):
    tagList = _expect(name, tag, TAG_List)
    if len(tagList) and tagList.list_type != TAG_Compound.tag:
        raise MalformedTree("Key {0} should be a list of TAG_Compound".format(name))
    return list(tagList)


def readSections(name, tag, unknown=None):
    return [Section.fromTree(t, unknown) for t in readCompoundList(name, tag)]


class Section(object):
    """ One 16x16x16 slice of a chunk in the legacy byte-array format.

    blocks holds the low eight bits of each block id, one byte per block.
    data, blockLight, skyLight and add are nibble arrays, two blocks per byte.
    All arrays are flat and ordered y, z, x.
    """

    # tree key -> (attribute, reader)
    fields = {
        "Y": ("y", readInt),
        "Blocks": ("blocks", readByteArray),
        "Data": ("data", readByteArray),
        "BlockLight": ("blockLight", readByteArray),
        "SkyLight": ("skyLight", readByteArray),
        "Add": ("add", readByteArray),
    }
    required = ("Y", "Blocks", "Data", "BlockLight", "SkyLight")
    lengths = {
        "blocks": SECTION_BLOCKS,
        "data": SECTION_BLOCKS // 2,
        "blockLight": SECTION_BLOCKS // 2,
        "skyLight": SECTION_BLOCKS // 2,
        "add": SECTION_BLOCKS // 2,
    }

    def __init__(self, y=0, blocks=None, data=None, blockLight=None, skyLight=None, add=None):
        self.y = y
        self.blocks = zeros(SECTION_BLOCKS, uint8) if blocks is None else array(blocks, uint8)
        self.data = zeros(SECTION_BLOCKS // 2, uint8) if data is None else array(data, uint8)
        self.blockLight = zeros(SECTION_BLOCKS // 2, uint8) if blockLight is None else array(blockLight, uint8)
        self.skyLight = zeros(SECTION_BLOCKS // 2, uint8) if skyLight is None else array(skyLight, uint8)
        self.add = None if add is None else array(add, uint8)

    @classmethod
    def create(cls, y):
        """ An empty section: all air, no block light, full sky light. """
        section = cls(y)
        section.skyLight[:] = 0xff
        return section

    @classmethod
    def fromTree(cls, tag, unknown=None):
        missing = [k for k in cls.required if k not in tag]
        if missing:
            raise MalformedTree("Section is missing {0}".format(", ".join(missing)))

        section = cls()
        for t in tag.value:
            if t.name in cls.fields:
                attr, read = cls.fields[t.name]
                setattr(section, attr, read(t.name, t))
            elif unknown is not None:
                unknown.append(UnknownKey("Sections/" + t.name, t))

        for attr, length in cls.lengths.items():
            value = getattr(section, attr)
            if value is not None and len(value) != length:
                raise MalformedTree("Section {0}: {1} has {2} entries, expected {3}".format(
                    section.y, attr, len(value), length))
        return section

    def toTree(self):
        tag = TAG_Compound()
        tag["Y"] = TAG_Byte(self.y)
        tag["Blocks"] = TAG_Byte_Array(self.blocks)
        tag["Data"] = TAG_Byte_Array(self.data)
        tag["BlockLight"] = TAG_Byte_Array(self.blockLight)
        tag["SkyLight"] = TAG_Byte_Array(self.skyLight)
        if self.add is not None:
            tag["Add"] = TAG_Byte_Array(self.add)
        return tag

    def blockIDs(self):
        """ Full block ids, combining blocks with the Add nibbles when present. """
        ids = self.blocks.astype(uint16)
        if self.add is not None:
            ids |= unpackNibbleArray(self.add).astype(uint16) << 8
        return ids

    def __eq__(self, other):
        if not isinstance(other, Section) or self.y != other.y:
            return False
        if (self.add is None) != (other.add is None):
            return False
        names = ["blocks", "data", "blockLight", "skyLight"] + (["add"] if self.add is not None else [])
        return all(array_equal(getattr(self, n), getattr(other, n)) for n in names)

    __hash__ = None

    def __repr__(self):
        return "Section(y={0})".format(self.y)


class Level(object):
    """ The legacy per-chunk Level compound.

    Read one with Level.fromTree(levelTag), which returns the Level together
    with a list of UnknownKey for every key that has no field here. Keys that
    are absent from the tree keep their defaults.
    """

    # tree key -> (attribute, reader)
    fields = {
        "Sections": ("sections", readSections),
        "TileEntities": ("blockEntities", readCompoundList),
        "BlockEntities": ("blockEntities", readCompoundList),
        "InhabitedTime": ("inhabitedTime", readInt),
        "LastUpdate": ("lastUpdate", readInt),
        "LightPopulated": ("lightPopulated", readBool),
        "TerrainPopulated": ("terrainPopulated", readBool),
        "xPos": ("x", readInt),
        "zPos": ("z", readInt),
        "Biomes": ("biomes", readByteArray),
        "HeightMap": ("heightMap", readIntArray),
    }

    def __init__(self):
        self.sections = []
        self.blockEntities = []
        self.inhabitedTime = 0
        self.lastUpdate = 0
        self.lightPopulated = False
        self.terrainPopulated = False
        self.x = 0
        self.z = 0
        self.biomes = zeros(0, uint8)
        self.heightMap = zeros(0, '>i4')

        # Older worlds call them TileEntities; written back under the name they were read from
        self.blockEntitiesKey = "TileEntities"

    @classmethod
    def fromTree(cls, tag):
        if not isinstance(tag, TAG_Compound):
            raise MalformedTree("Level must be a TAG_Compound, found {0}".format(tag.__class__.__name__))

        level = cls()
        unknown = []
        entityTag = None
        for t in tag.value:
            if t.name in cls.fields:
                attr, read = cls.fields[t.name]
                if read is readSections:
                    value = read(t.name, t, unknown)
                else:
                    value = read(t.name, t)
                setattr(level, attr, value)
                if attr == "blockEntities":
                    # with both names present the later list wins and the earlier one is reported
                    if entityTag is not None:
                        unknown.append(UnknownKey(entityTag.name, entityTag))
                    entityTag = t
                    level.blockEntitiesKey = t.name
            else:
                unknown.append(UnknownKey(t.name, t))

        for u in unknown:
            debug("Unknown key in chunk ({0}, {1}): {2} = {3!r}".format(level.x, level.z, u.name, u.tag))

        return level, unknown

    def toTree(self):
        tag = TAG_Compound()
        tag["Sections"] = TAG_List([s.toTree() for s in self.sections], list_type=TAG_Compound)
        tag[self.blockEntitiesKey] = TAG_List(deepcopy(self.blockEntities), list_type=TAG_Compound)
        tag["InhabitedTime"] = TAG_Long(self.inhabitedTime)
        tag["LastUpdate"] = TAG_Long(self.lastUpdate)
        tag["LightPopulated"] = TAG_Byte(self.lightPopulated)
        tag["TerrainPopulated"] = TAG_Byte(self.terrainPopulated)
        tag["xPos"] = TAG_Int(self.x)
        tag["zPos"] = TAG_Int(self.z)
        tag["Biomes"] = TAG_Byte_Array(self.biomes)
        tag["HeightMap"] = TAG_Int_Array(self.heightMap)
        return tag

    def getSection(self, y):
        for section in self.sections:
            if section.y == y:
                return section
        return None

    def __eq__(self, other):
        if not isinstance(other, Level):
            return False
        scalars = "inhabitedTime lastUpdate lightPopulated terrainPopulated x z".split()
        return (all(getattr(self, n) == getattr(other, n) for n in scalars)
                and self.sections == other.sections
                and self.blockEntities == other.blockEntities
                and array_equal(self.biomes, other.biomes)
                and array_equal(self.heightMap, other.heightMap))

    __hash__ = None

    def __repr__(self):
        return "Level(x={0}, z={1}, sections={2}, blockEntities={3})".format(
            self.x, self.z, len(self.sections), len(self.blockEntities))


class HeightMap(object):
    """ The modern Heightmaps compound. Only MOTION_BLOCKING is kept: 256
    heights packed into longs, nine bits per entry. """

    def __init__(self, motionBlocking=None):
        self.motionBlocking = zeros(0, '>i8') if motionBlocking is None else array(motionBlocking, '>i8')

    @classmethod
    def fromTree(cls, tag):
        _expect("Heightmaps", tag, TAG_Compound)
        if "MOTION_BLOCKING" not in tag:
            raise MalformedTree("Heightmaps is missing MOTION_BLOCKING")
        return cls(readLongArray("MOTION_BLOCKING", tag["MOTION_BLOCKING"]))

    def toTree(self):
        tag = TAG_Compound()
        tag["MOTION_BLOCKING"] = TAG_Long_Array(self.motionBlocking)
        return tag


class Chunk(object):
    """ One chunk column read out of a region.

    x and z are absolute chunk coordinates, set by the region the chunk was
    read from. The xPos/zPos stored in the tree are never used for addressing.
    level is the generic Level TAG_Compound; use getLevel() and setLevel() to
    go through the typed Level.
    """

    def __init__(self, x, z, level=None, dataVersion=None, extra=None):
        self.x = x
        self.z = z
        self.level = TAG_Compound() if level is None else level
        self.dataVersion = dataVersion
        self.extra = list(extra or [])

    @property
    def chunkPosition(self):
        return self.x, self.z

    @classmethod
    def create(cls, x, z, dataVersion=None):
        level = Level()
        level.x, level.z = x, z
        level.terrainPopulated = True
        return cls(x, z, level.toTree(), dataVersion)

    @classmethod
    def fromTree(cls, root_tag, x, z):
        if not isinstance(root_tag, TAG_Compound):
            raise MalformedTree("Chunk root must be a TAG_Compound")
        if "Level" not in root_tag:
            raise MalformedTree("Chunk {0} has no Level tag".format((x, z)))

        levelTag = _expect("Level", root_tag["Level"], TAG_Compound)
        dataVersion = None
        if "DataVersion" in root_tag:
            dataVersion = readInt("DataVersion", root_tag["DataVersion"])
        extra = [t for t in root_tag.value if t.name not in ("Level", "DataVersion")]

        return cls(x, z, levelTag, dataVersion, extra)

    @classmethod
    def fromBytes(cls, data, x, z):
        try:
            root_tag = nbtree.load(data)
        except NBTFormatError as e:
            raise MalformedTree("Chunk {0}: {1}".format((x, z), e))
        return cls.fromTree(root_tag, x, z)

    def toTree(self):
        root_tag = TAG_Compound()
        root_tag.name = ""
        if self.dataVersion is not None:
            root_tag["DataVersion"] = TAG_Int(self.dataVersion)
        root_tag["Level"] = self.level
        for t in self.extra:
            root_tag[t.name] = t
        return root_tag

    def toBytes(self):
        return self.toTree().save()

    def getLevel(self):
        return Level.fromTree(self.level)

    def setLevel(self, level):
        """ Write the typed fields of level into the Level compound. Keys the
        typed Level doesn't know about are left untouched. The block entity
        list is stored under level.blockEntitiesKey only. """
        for key in "TileEntities", "BlockEntities":
            if key != level.blockEntitiesKey and key in self.level:
                del self.level[key]
        for tag in level.toTree().value:
            self.level[tag.name] = tag

    def __str__(self):
        return "Chunk, coords:{0}, DataVersion: {1}".format(self.chunkPosition, self.dataVersion)
