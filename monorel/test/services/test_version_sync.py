from __future__ import annotations

import re
from pathlib import Path

from monorel.core.config import SubmoduleConfig, VersionSyncFile, config_from_raw, default_raw_config
from monorel.core.result import Err, Ok
from monorel.services.release.version_sync import VersionSyncEngine, compile_pattern, render_replacement

VERSION_PATTERN = '"version":\\s*"[^"]+"'
VERSION_REPLACEMENT = '"version": "$VERSION"'


def _config(*entries: VersionSyncFile) -> SubmoduleConfig:
    base = config_from_raw(default_raw_config("debugger"), "debugger")
    return SubmoduleConfig(
        name=base.name,
        display_name=base.display_name,
        path=base.path,
        repository=base.repository,
        artifacts=base.artifacts,
        build=base.build,
        publish=base.publish,
        version_sync=entries,
    )


def _json_entry(path: str, **kwargs: bool) -> VersionSyncFile:
    return VersionSyncFile(path=path, pattern=VERSION_PATTERN, replacement=VERSION_REPLACEMENT, **kwargs)


def _write_pkg(root: Path, rel: str, version: str = "0.0.0") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f'{{\n  "name": "x",\n  "version": "{version}"\n}}\n', encoding="utf-8")
    return path


class TestSync:
    def test_two_files_then_idempotent(self, tmp_path: Path) -> None:
        a = _write_pkg(tmp_path, "packages/a/package.json")
        b = _write_pkg(tmp_path, "packages/b/package.json")
        config = _config(_json_entry("packages/a/package.json"), _json_entry("packages/b/package.json"))
        engine = VersionSyncEngine(tmp_path)

        first = engine.sync(config, "1.2.3")

        assert isinstance(first, Ok)
        assert first.value.files_updated == ("packages/a/package.json", "packages/b/package.json")
        assert first.value.errors == ()
        assert engine.verify(config, "1.2.3")
        after_first = (a.read_bytes(), b.read_bytes())
        assert b'"version": "1.2.3"' in after_first[0]

        second = engine.sync(config, "1.2.3")

        assert isinstance(second, Ok)
        assert second.value.files_updated == ()
        assert second.value.errors == ()
        assert (a.read_bytes(), b.read_bytes()) == after_first

    def test_invalid_version_touches_nothing(self, tmp_path: Path) -> None:
        a = _write_pkg(tmp_path, "a/package.json")
        before = a.read_bytes()
        config = _config(_json_entry("a/package.json"))

        result = VersionSyncEngine(tmp_path).sync(config, "v1.0")

        assert isinstance(result, Err)
        assert result.error.kind == "validation"
        assert a.read_bytes() == before

    def test_missing_file_is_reported_and_others_continue(self, tmp_path: Path) -> None:
        _write_pkg(tmp_path, "a/package.json")
        config = _config(_json_entry("missing/package.json"), _json_entry("a/package.json"))

        result = VersionSyncEngine(tmp_path).sync(config, "2.0.0")

        assert isinstance(result, Ok)
        assert result.value.files_updated == ("a/package.json",)
        assert len(result.value.errors) == 1
        assert result.value.errors[0].startswith("missing/package.json: File not found")
        assert not result.value.ok

    def test_optional_missing_file_is_skipped(self, tmp_path: Path) -> None:
        config = _config(_json_entry("README.md", optional=True))
        engine = VersionSyncEngine(tmp_path)

        result = engine.sync(config, "2.0.0")

        assert isinstance(result, Ok) and result.value.errors == ()
        assert engine.verify(config, "2.0.0")
        assert engine.missing_files(config) == []

    def test_invalid_pattern_is_reported(self, tmp_path: Path) -> None:
        _write_pkg(tmp_path, "a/package.json")
        config = _config(VersionSyncFile(path="a/package.json", pattern="(unclosed", replacement="x"))

        result = VersionSyncEngine(tmp_path).sync(config, "1.0.0")

        assert isinstance(result, Ok)
        assert "Invalid pattern" in result.value.errors[0]

    def test_first_match_only_unless_global(self, tmp_path: Path) -> None:
        path = tmp_path / "README.md"
        path.write_text("install v0.1.0\nupgrade from v0.1.0\n", encoding="utf-8")
        first_only = _config(VersionSyncFile(path="README.md", pattern=r"v\d+\.\d+\.\d+", replacement="v$VERSION"))
        everywhere = _config(
            VersionSyncFile(path="README.md", pattern=r"v\d+\.\d+\.\d+", replacement="v$VERSION", replace_all=True)
        )

        VersionSyncEngine(tmp_path).sync(first_only, "1.0.0")
        assert path.read_text(encoding="utf-8") == "install v1.0.0\nupgrade from v0.1.0\n"

        VersionSyncEngine(tmp_path).sync(everywhere, "1.0.0")
        assert path.read_text(encoding="utf-8") == "install v1.0.0\nupgrade from v1.0.0\n"

    def test_crlf_is_preserved(self, tmp_path: Path) -> None:
        path = tmp_path / "package.json"
        path.write_bytes(b'{\r\n  "version": "0.0.0"\r\n}\r\n')
        config = _config(_json_entry("package.json"))

        VersionSyncEngine(tmp_path).sync(config, "1.0.0")

        assert path.read_bytes() == b'{\r\n  "version": "1.0.0"\r\n}\r\n'

    def test_entries_on_one_file_apply_in_order(self, tmp_path: Path) -> None:
        path = tmp_path / "build.txt"
        path.write_text("version=__VERSION__\n", encoding="utf-8")
        # The second pattern only matches what the first one wrote.
        config = _config(
            VersionSyncFile(path="build.txt", pattern="__VERSION__", replacement="$VERSION"),
            VersionSyncFile(path="build.txt", pattern=r"version=(\d+\.\d+\.\d+)", replacement="release=$1"),
        )
        engine = VersionSyncEngine(tmp_path)

        result = engine.sync(config, "1.0.0")

        assert isinstance(result, Ok)
        assert result.value.files_updated == ("build.txt",)
        assert path.read_text(encoding="utf-8") == "release=1.0.0\n"
        assert engine.verify(config, "1.0.0")

    def test_capture_groups_are_preserved(self, tmp_path: Path) -> None:
        path = _write_pkg(tmp_path, "package.json")
        config = _config(
            VersionSyncFile(path="package.json", pattern=r'("version":\s*")[^"]+(")', replacement="$1$VERSION$2")
        )

        result = VersionSyncEngine(tmp_path).sync(config, "3.1.4-rc.1")

        assert isinstance(result, Ok) and result.value.files_updated == ("package.json",)
        assert path.read_text(encoding="utf-8") == '{\n  "name": "x",\n  "version": "3.1.4-rc.1"\n}\n'

    def test_version_with_trailing_newline_is_rejected(self, tmp_path: Path) -> None:
        path = _write_pkg(tmp_path, "package.json")
        before = path.read_bytes()

        result = VersionSyncEngine(tmp_path).sync(_config(_json_entry("package.json")), "1.2.3\n")

        assert isinstance(result, Err)
        assert result.error.kind == "validation"
        assert path.read_bytes() == before


class TestVerify:
    def test_verify_false_when_version_absent(self, tmp_path: Path) -> None:
        _write_pkg(tmp_path, "a/package.json", "1.0.0")
        config = _config(_json_entry("a/package.json"))
        engine = VersionSyncEngine(tmp_path)

        assert engine.verify(config, "1.0.0")
        assert not engine.verify(config, "1.0.1")

    def test_verify_false_for_missing_required_file(self, tmp_path: Path) -> None:
        config = _config(_json_entry("a/package.json"))
        assert not VersionSyncEngine(tmp_path).verify(config, "1.0.0")

    def test_verify_rejects_invalid_version(self, tmp_path: Path) -> None:
        _write_pkg(tmp_path, "a/package.json", "1.0")
        config = _config(_json_entry("a/package.json"))
        assert not VersionSyncEngine(tmp_path).verify(config, "1.0")


class TestPatterns:
    def test_slash_literal_flags(self) -> None:
        entry = VersionSyncFile(path="x", pattern="/VERSION = '.*'/gi", replacement="")
        regex, replace_all = compile_pattern(entry)

        assert replace_all is True
        assert regex.flags & re.IGNORECASE
        assert regex.pattern == "VERSION = '.*'"

    def test_js_named_groups(self) -> None:
        entry = VersionSyncFile(path="x", pattern=r'(?<key>"version":\s*)"[^"]+"', replacement='$<key>"$VERSION"')
        regex, _ = compile_pattern(entry)
        match = regex.search('"version": "0.0.0"')

        assert match is not None
        assert render_replacement(entry.replacement, "1.2.3", match) == '"version": "1.2.3"'

    def test_compiled_pattern_passthrough(self) -> None:
        compiled = re.compile(r"\d+\.\d+\.\d+")
        regex, replace_all = compile_pattern(VersionSyncFile(path="x", pattern=compiled, replacement="$VERSION"))
        assert regex is compiled
        assert replace_all is False

    def test_replacement_tokens(self) -> None:
        match = re.search(r"(v)(\d+)", "v7")
        assert match is not None
        assert render_replacement("$1$VERSION", "2.0.0", match) == "v2.0.0"
        assert render_replacement("[$&]", "2.0.0", match) == "[v7]"
        assert render_replacement("$$VERSION", "2.0.0", match) == "$VERSION"
        assert render_replacement("$12", "2.0.0", match) == "v2"
        assert render_replacement("$9", "2.0.0", match) == "$9"
