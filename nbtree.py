# vim:set sw=4 sts=4 ts=4:

"""
Named Binary Tag library. Serializes and deserializes TAG_* objects
to and from binary data. Parse a chunk's tree by calling nbtree.load().
Create your own TAG_* objects and set their values, then call save() on the
root TAG_Compound to get the serialized bytes back.

Array tags keep their values in numpy arrays, so they can be sliced,
reshaped and compared like any other ndarray.

Official NBT documentation is here:
http://www.minecraft.net/docs/NBT.txt


Copyright 2010 David Rio Vierra
"""
from collections.abc import MutableMapping, MutableSequence
from io import BytesIO
import struct

from numpy import array, dtype, frombuffer, uint8, zeros

TAGfmt = ">b"


class NBTFormatError(RuntimeError):
    pass


class TAG_Value(object):
    """Simple values. Subclasses override fmt to change the type and size.
    Subclasses may set dataType instead of overriding setValue for automatic data type coercion"""

    fmt = ">b"
    tag = -1  # error!

    _value = None

    def getValue(self):
        return self._value

    def setValue(self, newVal):
        self._value = self.dataType(newVal)

    value = property(getValue, setValue, None, "Change the TAG's value. Data types are checked and coerced if needed.")

    _name = None

    def getName(self):
        return self._name

    def setName(self, newVal):
        self._name = "" if newVal is None else str(newVal)

    def delName(self):
        self._name = ""

    name = property(getName, setName, delName, "Change the TAG's name. Coerced to a string.")

    @classmethod
    def load_from(cls, data, data_cursor):
        (value,) = struct.unpack_from(cls.fmt, data, data_cursor)
        self = cls(value=value)
        return self, data_cursor + struct.calcsize(cls.fmt)

    def __init__(self, value=0, name=None):
        self.name = name
        self.value = value

    def __repr__(self):
        return "%s( \"%s\" ): %r" % (self.__class__.__name__, self.name, self.value)

    def __str__(self):
        return self.pretty_string()

    def __eq__(self, other):
        return type(self) is type(other) and self.value == other.value

    __hash__ = None

    def pretty_string(self, indent=0):
        if self.name:
            return " " * indent + "%s( \"%s\" ): %s" % (self.__class__.__name__, self.name, self.value)
        else:
            return " " * indent + "%s: %s" % (self.__class__.__name__, self.value)

    def write_tag(self, buf):
        buf.write(struct.pack(TAGfmt, self.tag))

    def write_name(self, buf):
        TAG_String(self.name or "").write_value(buf)

    def write_value(self, buf):
        buf.write(struct.pack(self.fmt, self.value))

    def save(self, buf=None):
        """Write the tagged element with its type and name. Returns the
        serialized bytes when no buffer is given."""
        if buf is None:
            buf = BytesIO()
            self.save(buf)
            return buf.getvalue()

        self.write_tag(buf)
        self.write_name(buf)
        self.write_value(buf)


class TAG_Byte(TAG_Value):
    tag = 1
    fmt = ">b"
    dataType = int


class TAG_Short(TAG_Value):
    tag = 2
    fmt = ">h"
    dataType = int


class TAG_Int(TAG_Value):
    tag = 3
    fmt = ">i"
    dataType = int


class TAG_Long(TAG_Value):
    tag = 4
    fmt = ">q"
    dataType = int


class TAG_Float(TAG_Value):
    tag = 5
    fmt = ">f"
    dataType = float


class TAG_Double(TAG_Value):
    tag = 6
    fmt = ">d"
    dataType = float


class TAG_Byte_Array(TAG_Value):
    """Like a string, but for binary data. four length bytes instead of
    two. value is a numpy array, and you can change its elements"""

    tag = 7
    arrayType = uint8

    def dataType(self, value):
        return array(value, self.arrayType)

    def __repr__(self):
        return "<%s: length %d> ( %s )" % (self.__class__.__name__, len(self.value), self.name)

    def __eq__(self, other):
        return type(self) is type(other) and self.value.shape == other.value.shape and bool((self.value == other.value).all())

    def pretty_string(self, indent=0):
        if self.name:
            return " " * indent + "%s( \"%s\" ): shape=%s dtype=%s %s" % (
                self.__class__.__name__,
                self.name,
                str(self.value.shape),
                str(self.value.dtype),
                self.value)
        else:
            return " " * indent + "%s: %s %s" % (self.__class__.__name__, str(self.value.shape), self.value)

    @classmethod
    def load_from(cls, data, data_cursor):
        (count,) = struct.unpack_from(">i", data, data_cursor)
        data_cursor += 4
        itemsize = dtype(cls.arrayType).itemsize
        end = data_cursor + count * itemsize
        if count < 0 or end > len(data):
            raise NBTFormatError("%s of length %d runs past the end of the data" % (cls.__name__, count))
        value = frombuffer(data, cls.arrayType, count, data_cursor).copy()
        return cls(value), end

    def __init__(self, value=None, name=None):
        self.name = name
        if value is None:
            value = zeros(0, self.arrayType)
        self.value = value

    def write_value(self, buf):
        valuestr = self.value.astype(self.arrayType).tobytes()
        buf.write(struct.pack(">i", self.value.size))
        buf.write(valuestr)


class TAG_Int_Array(TAG_Byte_Array):
    """An array of ints"""
    tag = 11
    arrayType = ">i4"


class TAG_Long_Array(TAG_Byte_Array):
    """An array of longs"""
    tag = 12
    arrayType = ">i8"


class TAG_String(TAG_Value):
    """String in UTF-8
    The value parameter must be a 'str' or UTF-8 encoded 'bytes'
    """

    tag = 8

    def dataType(self, s):
        if isinstance(s, bytes):
            return s.decode('utf-8')
        return str(s)

    @classmethod
    def load_from(cls, data, data_cursor):
        (string_len,) = struct.unpack_from(">H", data, data_cursor)
        data_cursor += 2
        end = data_cursor + string_len
        if end > len(data):
            raise NBTFormatError("String of length %d runs past the end of the data" % string_len)
        try:
            value = bytes(data[data_cursor:end]).decode('utf-8')
        except UnicodeDecodeError as e:
            raise NBTFormatError("String is not valid UTF-8: %s" % e)
        return cls(value), end

    def __init__(self, value="", name=None):
        self.name = name
        self.value = value

    def write_value(self, buf):
        u8value = self._value.encode('utf-8')
        buf.write(struct.pack(">H", len(u8value)))
        buf.write(u8value)


class TAG_Compound(TAG_Value, MutableMapping):
    """A heterogenous list of named tags. Names must be unique within
    the TAG_Compound. Add tags to the compound using the subscript
    operator []. This will automatically name the tags."""

    tag = 10

    def dataType(self, val):
        for i in val:
            assert isinstance(i, TAG_Value)
            assert i.name
        return list(val)

    def __repr__(self):
        return "%s( %s ): %s" % (self.__class__.__name__, self.name, self.value)

    def __eq__(self, other):
        if type(self) is not type(other) or len(self) != len(other):
            return False
        return all(k in other and self[k] == other[k] for k in self)

    def pretty_string(self, indent=0):
        if self.name:
            pretty = " " * indent + "%s( \"%s\" ): %d items\n" % (self.__class__.__name__, self.name, len(self.value))
        else:
            pretty = " " * indent + "%s(): %d items\n" % (self.__class__.__name__, len(self.value))
        indent += 4
        for tag in self.value:
            pretty += tag.pretty_string(indent) + "\n"
        return pretty

    @classmethod
    def load_from(cls, data, data_cursor):
        self = cls()
        while True:
            if data_cursor >= len(data):
                raise NBTFormatError("TAG_Compound is missing its TAG_End")
            tag_type = data[data_cursor]
            data_cursor += 1
            if tag_type == 0:
                break

            tag, data_cursor = load_named(data, data_cursor, tag_type)
            self._value.append(tag)

        return self, data_cursor

    def __init__(self, value=None, name=""):
        self.name = name
        self.value = value or []

    def write_value(self, buf):
        for i in self.value:
            i.save(buf)
        buf.write(b"\x00")

    # collection functions
    def __getitem__(self, k):
        for key in self.value:
            if key.name == k:
                return key
        raise KeyError("Key {0} not found in tag {1}".format(k, self.name))

    def __iter__(self):
        return (x.name for x in self.value)

    def __contains__(self, k):
        return any(x.name == k for x in self.value)

    def __len__(self):
        return len(self.value)

    def __setitem__(self, k, v):
        """Automatically wraps lists and tuples in a TAG_List, and wraps strings
        in a TAG_String."""
        if isinstance(v, (list, tuple)):
            v = TAG_List(v)
        elif isinstance(v, str):
            v = TAG_String(v)

        if v.__class__ not in tag_classes.values():
            raise TypeError("Invalid type %s for TAG_Compound" % (v.__class__,))

        # replace any item already named k in place to keep the key order
        for i, old in enumerate(self.value):
            if old.name == k:
                self.value[i] = v
                break
        else:
            self.value.append(v)
        v.name = k

    def __delitem__(self, k):
        self.value.remove(self[k])

    def add(self, v):
        self[v.name] = v


class TAG_List(TAG_Value, MutableSequence):
    """A homogenous list of unnamed data of a single TAG_* type.
    Once created, the type can only be changed by emptying the list
    and adding an element of the new type. If created with no arguments,
    returns a list of TAG_Compound

    Empty lists in the wild have been seen with type TAG_Byte and TAG_End"""

    tag = 9

    def dataType(self, val):
        if val:
            listType = val[0].__class__
            assert all(isinstance(x, listType) for x in val)
        return list(val)

    def __repr__(self):
        return "%s( %s ): %s" % (self.__class__.__name__, self.name, self.value)

    def __eq__(self, other):
        return type(self) is type(other) and self.value == other.value

    def pretty_string(self, indent=0):
        if self.name:
            pretty = " " * indent + "%s( \"%s\" ):\n" % (self.__class__.__name__, self.name)
        else:
            pretty = " " * indent + "%s():\n" % (self.__class__.__name__,)

        indent += 4
        for tag in self.value:
            pretty += tag.pretty_string(indent) + "\n"
        return pretty

    @classmethod
    def load_from(cls, data, data_cursor):
        self = cls()
        if data_cursor >= len(data):
            raise NBTFormatError("TAG_List is missing its element type")
        self.list_type = data[data_cursor]
        data_cursor += 1

        list_length, data_cursor = TAG_Int.load_from(data, data_cursor)
        list_length = list_length.value
        if list_length > 0 and self.list_type not in tag_classes:
            raise NBTFormatError("Unknown tag type {0} in TAG_List".format(self.list_type))

        for i in range(list_length):
            tag, data_cursor = tag_classes[self.list_type].load_from(data, data_cursor)
            tag.name = ""
            self.value.append(tag)

        return self, data_cursor

    def __init__(self, value=None, name=None, list_type=None):
        # can be created from a list of tags in value, with an optional
        # name, or created empty with list_type taken from a TAG class

        self.name = name
        self.list_type = (list_type or TAG_Compound).tag

        value = list(value or [])
        if len(value):
            self.list_type = value[0].tag
            value = [x for x in value if x.__class__ == value[0].__class__]
            for x in value:
                x.name = ""

        self.value = value

    # collection methods
    def __iter__(self):
        return iter(self.value)

    def __contains__(self, k):
        return k in self.value

    def __getitem__(self, i):
        return self.value[i]

    def __len__(self):
        return len(self.value)

    def __setitem__(self, i, v):
        if v.__class__ != tag_classes.get(self.list_type):
            raise TypeError("Invalid type %s for TAG_List(%s)" % (v.__class__, tag_classes.get(self.list_type)))
        v.name = ""
        self.value[i] = v

    def __delitem__(self, i):
        del self.value[i]

    def insert(self, i, v):
        if v.tag not in tag_classes:
            raise TypeError("Not a tag type: %s" % (v,))
        if len(self) == 0:
            self.list_type = v.tag
        elif v.__class__ != tag_classes[self.list_type]:
            raise TypeError("Invalid type %s for TAG_List(%s)" % (v.__class__, tag_classes[self.list_type]))

        v.name = ""
        self.value.insert(i, v)

    def write_value(self, buf):
        buf.write(struct.pack(TAGfmt, self.list_type))
        TAG_Int(len(self)).write_value(buf)
        for i in self.value:
            i.write_value(buf)


tag_classes = {
    1: TAG_Byte,
    2: TAG_Short,
    3: TAG_Int,
    4: TAG_Long,
    5: TAG_Float,
    6: TAG_Double,
    7: TAG_Byte_Array,
    8: TAG_String,
    9: TAG_List,
    10: TAG_Compound,
    11: TAG_Int_Array,
    12: TAG_Long_Array,
}


def load_named(data, data_cursor, tag_type):
    tag_name, data_cursor = TAG_String.load_from(data, data_cursor)
    tag_name = tag_name.value

    if tag_type not in tag_classes:
        raise NBTFormatError("Unknown tag type {0} for tag \"{1}\"".format(tag_type, tag_name))
    tag, data_cursor = tag_classes[tag_type].load_from(data, data_cursor)
    tag.name = tag_name

    return tag, data_cursor


def load(buf):
    """Unserialize data from an entire NBT blob and return the
    root TAG_Compound object. Argument is a bytes-like object holding
    uncompressed TAG_Compound data. """

    data = bytes(buf)
    if not len(data):
        raise NBTFormatError("Asked to load root tag of zero length")

    tag_type = data[0]
    if tag_type != 10:
        raise NBTFormatError('Not an NBT file with a root TAG_Compound (found {0})'.format(tag_type))

    try:
        tag, data_cursor = load_named(data, 1, tag_type)
    except (struct.error, IndexError) as e:
        raise NBTFormatError("Truncated NBT data: {0}".format(e))

    return tag


__all__ = [a.__name__ for a in tag_classes.values()] + ["load", "NBTFormatError"]
