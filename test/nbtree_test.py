import unittest

import numpy

import nbtree

__author__ = 'Rio'


class TestNBT(unittest.TestCase):

    def testCreate(self):
        "Create a chunk's root tag."

        "The root of an NBT blob is always a TAG_Compound."
        root = nbtree.TAG_Compound(name="")

        "Subtags of a TAG_Compound are automatically named when you use the [] operator."
        root["Level"] = nbtree.TAG_Compound()
        root["Level"]["xPos"] = nbtree.TAG_Int(-3)
        root["Level"]["zPos"] = nbtree.TAG_Int(7)
        root["Level"]["LastUpdate"] = nbtree.TAG_Long(2 ** 40)
        root["Level"]["TerrainPopulated"] = nbtree.TAG_Byte(1)

        "You can also create and name a tag before adding it to the compound."
        entities = nbtree.TAG_List((nbtree.TAG_Short(100), nbtree.TAG_Short(45), nbtree.TAG_Short(55)))
        entities.name = "Entities"
        root["Level"].add(entities)

        "Byte arrays are stored as numpy.uint8 arrays."
        root["Level"]["Biomes"] = nbtree.TAG_Byte_Array(numpy.zeros(256, dtype=numpy.uint8))
        root["Level"]["Biomes"].value[0:16] = 4

        root["Level"]["HeightMap"] = nbtree.TAG_Int_Array(numpy.arange(256))
        root["Level"]["Note"] = "strings are wrapped in a TAG_String"

        return root

    def testModify(self):
        root = self.testCreate()

        "Because the tag type usually doesn't change, "
        "we can replace the tag's value instead of replacing the entire tag."
        root["Level"]["xPos"].value = 12
        self.assertEqual(root["Level"]["xPos"].value, 12)

        "Remove members of a TAG_Compound using del, similar to a python dict."
        del root["Level"]["Note"]
        self.assertNotIn("Note", root["Level"])

        "Replacing an existing key keeps its position."
        keys = list(root["Level"])
        root["Level"]["zPos"] = nbtree.TAG_Int(0)
        self.assertEqual(keys, list(root["Level"]))

    def testSaveLoad(self):
        root = self.testCreate()
        data = root.save()
        self.assertIsInstance(data, bytes)

        loaded = nbtree.load(data)
        self.assertEqual(loaded, root)
        self.assertEqual(loaded["Level"]["LastUpdate"].value, 2 ** 40)
        self.assertEqual(loaded["Level"]["Note"].value, "strings are wrapped in a TAG_String")
        assert (loaded["Level"]["HeightMap"].value == numpy.arange(256)).all()
        self.assertEqual([t.value for t in loaded["Level"]["Entities"]], [100, 45, 55])

    def testLongArray(self):
        root = nbtree.TAG_Compound()
        root["MOTION_BLOCKING"] = nbtree.TAG_Long_Array([-1, 2 ** 62, 0])
        loaded = nbtree.load(root.save())

        tag = loaded["MOTION_BLOCKING"]
        self.assertIsInstance(tag, nbtree.TAG_Long_Array)
        self.assertEqual(list(tag.value), [-1, 2 ** 62, 0])

    def testEmptyList(self):
        root = nbtree.TAG_Compound()
        root["TileEntities"] = nbtree.TAG_List()
        loaded = nbtree.load(root.save())
        self.assertEqual(len(loaded["TileEntities"]), 0)
        self.assertEqual(loaded["TileEntities"].list_type, nbtree.TAG_Compound.tag)

    def testErrors(self):
        """
        attempt to name elements of a TAG_List
        named list elements are not allowed by the NBT spec,
        so we must discard any names when writing a list.
        """

        root = self.testCreate()
        root["Level"]["Entities"][0].name = "Torg Potter"
        newroot = nbtree.load(root.save())
        self.assertEqual(newroot["Level"]["Entities"][0].name, "")

        """
        attempt to delete non-existent TAG_Compound elements
        this generates a KeyError like a python dict does.
        """
        with self.assertRaises(KeyError):
            del root["DEADBEEF"]

        "Lists only hold one type of tag."
        with self.assertRaises(TypeError):
            root["Level"]["Entities"].append(nbtree.TAG_Int(1))

    def testMalformed(self):
        with self.assertRaises(nbtree.NBTFormatError):
            nbtree.load(b"")

        "The root must be a TAG_Compound."
        with self.assertRaises(nbtree.NBTFormatError):
            nbtree.load(nbtree.TAG_Int(5, name="x").save())

        data = self.testCreate().save()
        with self.assertRaises(nbtree.NBTFormatError):
            nbtree.load(data[:len(data) // 2])

        "Unknown tag ids are rejected."
        with self.assertRaises(nbtree.NBTFormatError):
            nbtree.load(b"\x0a\x00\x00\x63\x00\x01a\x00")
