"""On-disk formats for object collections and binary images.

Both formats share one container layout. All integers are little endian.

    ┌─────────────────────────────────────────────────────────────┐
    │ MAGIC (16 bytes)                                            │
    ├─────────────────────────────────────────────────────────────┤
    │ VERSION (4 bytes): uint32                                   │
    ├─────────────────────────────────────────────────────────────┤
    │ SPARE_1 (4 bytes): uint32 (reserved)                        │
    ├─────────────────────────────────────────────────────────────┤
    │ SPARE_2 (4 bytes): uint32 (reserved)                        │
    ├─────────────────────────────────────────────────────────────┤
    │ SPARE_3 (8 bytes): uint64 (reserved)                        │
    ├─────────────────────────────────────────────────────────────┤
    │ SPARE_4 (8 bytes): uint64 (reserved)                        │
    ├─────────────────────────────────────────────────────────────┤
    │ METADATA_LENGTH (8 bytes): uint64                           │
    ├─────────────────────────────────────────────────────────────┤
    │ METADATA_BLOB (N bytes): MessagePack-encoded map            │
    ├─────────────────────────────────────────────────────────────┤
    │ PAYLOAD_LENGTH (8 bytes): uint64                            │
    ├─────────────────────────────────────────────────────────────┤
    │ PAYLOAD_BLOB (M bytes): LLVM bitcode                        │
    └─────────────────────────────────────────────────────────────┘

An object collection stores one metadata record per unit (name,
declarations, bitcode size) and the concatenated bitcode of all units as
its payload. A binary image stores the entry address, target triple and
symbol table as metadata and the linked bitcode as payload; on disk it may
be preceded by a single ``#!`` loader line.
"""
from __future__ import annotations

import struct
from typing import BinaryIO

import msgpack
from msgpack.exceptions import UnpackException

from tamago.backend.objects import Binary, Declaration, ObjectUnit, Objects
from tamago.internals.errors import FormatError


MAX_SECTION_SIZE = 1024 * 1024 * 1024  # 1GB sanity limit


def _read_bytes(f: BinaryIO, size: int, path: str, section: str) -> bytes:
    """Read exactly `size` bytes.

    Raises:
        FormatError: TB0003 if the stream ends early.
    """
    data = f.read(size)
    if len(data) != size:
        raise FormatError("TB0003", path=path, section=section, expected=size, actual=len(data))
    return data


def _write_container(f: BinaryIO, magic: bytes, version: int, metadata: dict, payload: bytes) -> None:
    metadata_blob = msgpack.packb(metadata, use_bin_type=True)

    f.write(magic)
    f.write(struct.pack("<I", version))
    f.write(struct.pack("<I", 0))  # SPARE_1
    f.write(struct.pack("<I", 0))  # SPARE_2
    f.write(struct.pack("<Q", 0))  # SPARE_3
    f.write(struct.pack("<Q", 0))  # SPARE_4

    f.write(struct.pack("<Q", len(metadata_blob)))
    f.write(metadata_blob)

    f.write(struct.pack("<Q", len(payload)))
    f.write(payload)


def _read_container(f: BinaryIO, path: str, kind: str, magic: bytes, version: int,
                    prefix: bytes = b"") -> tuple[dict, bytes]:
    """Validate the header and return (metadata, payload).

    Raises:
        FormatError: TB0001-TB0005 for format errors.
    """
    head = prefix + _read_bytes(f, len(magic) - len(prefix), path, "header")
    if head != magic:
        raise FormatError("TB0001", path=path, kind=kind)

    header_rest = _read_bytes(f, 28, path, "header")
    found = struct.unpack("<I", header_rest[0:4])[0]
    if found != version:
        raise FormatError("TB0002", path=path, kind=kind, version=found, supported=version)

    meta_len = struct.unpack("<Q", _read_bytes(f, 8, path, "header"))[0]
    if meta_len > MAX_SECTION_SIZE:
        raise FormatError("TB0005", path=path, kind=kind, max_size=MAX_SECTION_SIZE)
    metadata_blob = _read_bytes(f, meta_len, path, "metadata")

    try:
        metadata = msgpack.unpackb(metadata_blob, raw=False)
    except (ValueError, TypeError, UnpackException) as e:
        raise FormatError("TB0004", path=path, section="metadata", reason=str(e)) from e
    if not isinstance(metadata, dict):
        raise FormatError("TB0004", path=path, section="metadata", reason="not a map")

    payload_len = struct.unpack("<Q", _read_bytes(f, 8, path, "header"))[0]
    if payload_len > MAX_SECTION_SIZE:
        raise FormatError("TB0005", path=path, kind=kind, max_size=MAX_SECTION_SIZE)
    payload = _read_bytes(f, payload_len, path, "payload")
    return metadata, payload


class ObjectFormat:
    """Reader/writer for object collections (.o and .so files)."""

    MAGIC = b'\x7fTAMAGO-OBJECTS\x00'
    VERSION = 1
    KIND = "an object collection"

    @staticmethod
    def write(f: BinaryIO, objects: Objects) -> None:
        units = []
        for unit in objects.units:
            units.append({
                "name": unit.name,
                "declarations": [d.to_dict() for d in unit.declarations],
                "bitcode_size": len(unit.bitcode),
            })
        payload = b"".join(unit.bitcode for unit in objects.units)
        _write_container(f, ObjectFormat.MAGIC, ObjectFormat.VERSION, {"units": units}, payload)

    @staticmethod
    def read(f: BinaryIO, path: str) -> Objects:
        """Decode an object collection from a byte stream.

        Raises:
            FormatError: for any header, metadata or record mismatch.
        """
        metadata, payload = _read_container(f, path, ObjectFormat.KIND,
                                            ObjectFormat.MAGIC, ObjectFormat.VERSION)
        try:
            objects = Objects()
            offset = 0
            for record in metadata["units"]:
                size = int(record["bitcode_size"])
                if size < 0 or offset + size > len(payload):
                    raise ValueError(f"bitcode of unit '{record['name']}' exceeds the payload")
                objects.units.append(ObjectUnit(
                    name=str(record["name"]),
                    declarations=tuple(Declaration.from_dict(d) for d in record["declarations"]),
                    bitcode=payload[offset:offset + size],
                ))
                offset += size
        except (KeyError, TypeError, ValueError) as e:
            raise FormatError("TB0004", path=path, section="unit record", reason=str(e)) from e

        if offset != len(payload):
            raise FormatError("TB0004", path=path, section="payload",
                              reason=f"{len(payload) - offset} trailing bytes")
        return objects


class BinaryFormat:
    """Reader/writer for binary images."""

    MAGIC = b'\x7fTAMAGO-BINARY\x00\x00'
    VERSION = 1
    KIND = "a binary image"

    @staticmethod
    def write(f: BinaryIO, binary: Binary) -> None:
        metadata = {
            "entry": binary.entry,
            "triple": binary.triple,
            "symbols": binary.symbols,
        }
        _write_container(f, BinaryFormat.MAGIC, BinaryFormat.VERSION, metadata, binary.bitcode)

    @staticmethod
    def read(f: BinaryIO, path: str) -> Binary:
        """Decode a binary image, skipping a leading ``#!`` line.

        Raises:
            FormatError: for any header or metadata mismatch.
        """
        prefix = f.read(2)
        if prefix == b"#!":
            f.readline()
            prefix = b""

        metadata, payload = _read_container(f, path, BinaryFormat.KIND,
                                            BinaryFormat.MAGIC, BinaryFormat.VERSION, prefix)
        try:
            symbols = {str(k): int(v) for k, v in metadata["symbols"].items()}
            return Binary(entry=int(metadata["entry"]), triple=str(metadata["triple"]),
                          symbols=symbols, bitcode=payload)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise FormatError("TB0004", path=path, section="metadata", reason=str(e)) from e
