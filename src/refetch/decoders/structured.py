"""Structured-text decoders: JSON, JSON lines, YAML, INI, TOML."""

import configparser
import json
import tomllib
from typing import Any

from refetch.decoders.base import Decoder, DecodeOptions
from refetch.errors import DecodeError


class JsonDecoder(Decoder):
    """Decodes a JSON document."""

    format_tags = ("json",)

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        try:
            return json.loads(options.text(data))
        except json.JSONDecodeError as e:
            raise DecodeError(
                options.format_tag, f"line {e.lineno} column {e.colno}: {e.msg}"
            ) from e


class JsonLinesDecoder(Decoder):
    """Decodes newline-delimited JSON into a list, skipping blank lines."""

    format_tags = ("jsonl", "ndjson")

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        records: list[Any] = []
        for line_number, line in enumerate(options.text(data).splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise DecodeError(
                    options.format_tag, f"line {line_number}: {e.msg}"
                ) from e
        return records


class YamlDecoder(Decoder):
    """Decodes a YAML document with the safe loader.

    Options:
        all: Load every document of a multi-document stream as a list.
    """

    format_tags = ("yaml", "yml")
    requires = ("yaml",)

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        import yaml

        text = options.text(data)
        try:
            if options.get("all", False):
                return list(yaml.safe_load_all(text))
            return yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise DecodeError(options.format_tag, str(e)) from e


class ConfigDecoder(Decoder):
    """Decodes config-like formats into nested dicts.

    INI sections become top-level keys (the DEFAULT section is merged into
    each section by configparser). TOML is parsed with the standard library.
    """

    format_tags = ("ini", "toml")

    def decode(self, data: bytes | str, options: DecodeOptions) -> Any:
        text = options.text(data)
        if options.format_tag == "toml":
            try:
                return tomllib.loads(text)
            except tomllib.TOMLDecodeError as e:
                raise DecodeError(options.format_tag, str(e)) from e

        parser = configparser.ConfigParser(interpolation=None)
        try:
            parser.read_string(text)
        except configparser.Error as e:
            raise DecodeError(options.format_tag, str(e)) from e
        return {section: dict(parser[section]) for section in parser.sections()}
