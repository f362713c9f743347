import gzip
import unittest
import zlib

import chunkcompress
from chunkcompress import VERSION_DEFLATE, VERSION_GZIP, VERSION_NONE
from regionbase import DecompressionFailure

__author__ = 'Rio'

RAW = b"\x0a\x00\x00" + b"chunk data " * 200 + b"\x00"


class TestCompression(unittest.TestCase):
    def testDeflate(self):
        data = chunkcompress.compress(RAW)
        self.assertEqual(zlib.decompress(data), RAW)
        self.assertLess(len(data), len(RAW))
        self.assertEqual(chunkcompress.decompress(VERSION_DEFLATE, data), RAW)

    def testGzip(self):
        data = gzip.compress(RAW)
        self.assertEqual(chunkcompress.decompress(VERSION_GZIP, data), RAW)
        self.assertEqual(chunkcompress.decompress(VERSION_GZIP, chunkcompress.compress(RAW, VERSION_GZIP)), RAW)

    def testUncompressed(self):
        self.assertEqual(chunkcompress.compress(RAW, VERSION_NONE), RAW)
        self.assertEqual(chunkcompress.decompress(VERSION_NONE, RAW), RAW)

    def testUnknownSchemeIsRaw(self):
        self.assertEqual(chunkcompress.decompress(9, RAW), RAW)
        with self.assertRaises(ValueError):
            chunkcompress.compress(RAW, 9)

    def testCorrupt(self):
        data = chunkcompress.compress(RAW)
        with self.assertRaises(DecompressionFailure):
            chunkcompress.decompress(VERSION_DEFLATE, data[:len(data) // 2])
        with self.assertRaises(DecompressionFailure):
            chunkcompress.decompress(VERSION_DEFLATE, b"not zlib at all")
        with self.assertRaises(DecompressionFailure):
            chunkcompress.decompress(VERSION_GZIP, data)
