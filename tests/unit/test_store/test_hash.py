"""Unit tests for canonical serialization and fingerprints."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from functools import partial
from xml.etree.ElementTree import fromstring

import pytest
from bs4 import BeautifulSoup

from refetch.store.hash import canonical_json, canonicalize, fingerprint
from tests.helpers.time import FIXED_NOW


@dataclass
class _Point:
    x: int
    y: int


def _strip(data: bytes, meta: object) -> bytes:
    return data.strip()


def _upper(data: bytes, meta: object) -> bytes:
    return data.upper()


def _cut(data: bytes, meta: object, size: int) -> bytes:
    return data[:size]


def _pad(data: bytes, meta: object, size: int) -> bytes:
    return data.ljust(size)


def _suffixer(suffix: bytes) -> Callable[[bytes, object], bytes]:
    def add_suffix(data: bytes, meta: object) -> bytes:
        return data + suffix

    return add_suffix


class _Row:
    def __init__(self, n: int) -> None:
        self.n = n


class _Multiplier:
    def __init__(self, factor: int) -> None:
        self.factor = factor

    def __call__(self, data: bytes, meta: object) -> bytes:
        return data * self.factor


class TestFingerprint:
    """Tests for fingerprint determinism."""

    def test_bytes_hash_is_sha256_of_content(self) -> None:
        """Test that raw bytes are hashed directly."""
        assert (
            fingerprint(b"hello")
            == "2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824"
        )

    def test_str_hashes_like_its_utf8_bytes(self) -> None:
        """Test that text and its UTF-8 encoding share a fingerprint."""
        assert fingerprint("héllo") == fingerprint("héllo".encode())

    def test_mapping_key_order_is_irrelevant(self) -> None:
        """Test that mapping key order does not change the fingerprint."""
        assert fingerprint({"a": 1, "b": [1, 2]}) == fingerprint({"b": [1, 2], "a": 1})

    def test_list_order_is_relevant(self) -> None:
        """Test that sequence order changes the fingerprint."""
        assert fingerprint([1, 2]) != fingerprint([2, 1])

    def test_fingerprint_is_hex_sha256(self) -> None:
        """Test that fingerprints are 64 lowercase hex characters."""
        digest = fingerprint({"url": "https://example.com"})

        assert len(digest) == 64
        assert all(c in "0123456789abcdef" for c in digest)

    def test_functions_distinguished_by_name_and_source(self) -> None:
        """Test that different hooks yield different fingerprints."""
        assert fingerprint({"hook": _strip}) == fingerprint({"hook": _strip})
        assert fingerprint({"hook": _strip}) != fingerprint({"hook": _upper})

    def test_partials_distinguished_by_function_and_arguments(self) -> None:
        """Test that partials differing in function or arguments differ."""
        assert fingerprint(partial(_cut, size=1)) == fingerprint(partial(_cut, size=1))
        assert fingerprint(partial(_cut, size=1)) != fingerprint(partial(_cut, size=2))
        assert fingerprint(partial(_cut, size=1)) != fingerprint(partial(_pad, size=1))

    def test_lambdas_on_one_line_distinguished(self) -> None:
        """Test that lambdas sharing a source line hash by their code."""
        first, second = (lambda d, m: d), (lambda d, m: d[::-1])

        assert fingerprint(first) != fingerprint(second)

    def test_closures_distinguished_by_captured_constants(self) -> None:
        """Test that factory-made hooks differ when their captures differ."""
        assert fingerprint(_suffixer(b"a")) == fingerprint(_suffixer(b"a"))
        assert fingerprint(_suffixer(b"a")) != fingerprint(_suffixer(b"b"))

    def test_closure_over_mutable_state_is_stable(self) -> None:
        """Test that mutating captured state does not change the fingerprint."""
        seen: list[object] = []

        def remember(data: bytes, meta: object) -> bytes:
            seen.append(meta)
            return data

        before = fingerprint(remember)
        remember(b"", "meta")

        assert fingerprint(remember) == before

    def test_callable_instances_distinguished_by_state(self) -> None:
        """Test that callable objects hash by class and attributes."""
        assert fingerprint(_Multiplier(2)) == fingerprint(_Multiplier(2))
        assert fingerprint(_Multiplier(2)) != fingerprint(_Multiplier(3))

    def test_plain_objects_hash_by_attributes(self) -> None:
        """Test that equal plain objects hash equally across instances."""
        assert fingerprint({"rows": [_Row(1)]}) == fingerprint({"rows": [_Row(1)]})
        assert fingerprint({"rows": [_Row(1)]}) != fingerprint({"rows": [_Row(2)]})

    def test_stateless_object_rejected(self) -> None:
        """Test that objects without attribute state cannot be fingerprinted."""
        with pytest.raises(TypeError, match="Cannot fingerprint"):
            fingerprint({"value": object()})

    def test_markup_documents_hash_by_content(self) -> None:
        """Test that parsed documents with equal markup hash equally."""
        first = BeautifulSoup("<p>same</p>", "lxml")
        second = BeautifulSoup("<p>same</p>", "lxml")
        other = BeautifulSoup("<p>other</p>", "lxml")

        assert fingerprint(first) == fingerprint(second)
        assert fingerprint(first) != fingerprint(other)

    def test_xml_elements_hash_by_content(self) -> None:
        """Test that XML elements with equal markup hash equally."""
        assert fingerprint(fromstring("<a><b>1</b></a>")) == fingerprint(
            fromstring("<a><b>1</b></a>")
        )


class TestCanonicalize:
    """Tests for canonical forms of non-JSON values."""

    def test_bytes_reduced_to_digest(self) -> None:
        """Test that nested bytes are replaced by their digest."""
        result = canonicalize({"body": b"hello"})

        assert result == {"body": {"__bytes__": fingerprint(b"hello")}}

    def test_datetime_and_timedelta(self) -> None:
        """Test that time values serialize to stable text and numbers."""
        assert canonicalize(FIXED_NOW) == {"__datetime__": FIXED_NOW.isoformat()}
        assert canonicalize(timedelta(seconds=90)) == {"__timedelta__": 90.0}

    def test_dataclass_and_tuple(self) -> None:
        """Test that dataclasses become dicts and tuples become lists."""
        assert canonicalize((_Point(1, 2),)) == [{"x": 1, "y": 2}]

    def test_sets_are_sorted(self) -> None:
        """Test that set iteration order does not leak into output."""
        assert canonical_json({3, 1, 2}) == "[1,2,3]"

    def test_canonical_json_is_compact_and_sorted(self) -> None:
        """Test the canonical JSON text layout."""
        assert canonical_json({"b": 1, "a": None}) == '{"a":null,"b":1}'
