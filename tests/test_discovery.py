"""Tests for file discovery and migration ordering."""

from __future__ import annotations

import shutil

import pytest

from idxprobe.discovery import MAX_FILE_SIZE, discover_files, migration_sort_key


def _order(paths, mode):
    return sorted(paths, key=migration_sort_key(mode))


class TestDiscoverFiles:
    def test_suffix_filter_and_sorting(self, project_factory):
        proj = project_factory({
            "b/Two.java": "class Two {}",
            "a/One.java": "class One {}",
            "a/notes.txt": "x",
            "db/V1__init.SQL": "SELECT 1;",
        })
        assert discover_files(proj, [".java"]) == ["a/One.java", "b/Two.java"]
        assert discover_files(proj, [".sql"]) == ["db/V1__init.SQL"]

    def test_skip_dirs(self, project_factory):
        proj = project_factory({
            "src/Keep.java": "class Keep {}",
            "target/classes/Gen.java": "class Gen {}",
            "build/Gen.java": "class Gen {}",
            ".idxprobe/Cache.java": "class Cache {}",
        })
        assert discover_files(proj, [".java"]) == ["src/Keep.java"]

    def test_oversized_files_are_excluded(self, project_factory):
        proj = project_factory({
            "Small.java": "class Small {}",
            "Huge.java": "x" * (MAX_FILE_SIZE + 1),
        })
        assert discover_files(proj, [".java"]) == ["Small.java"]

    @pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
    def test_git_repository_respects_gitignore(self, project_factory):
        proj = project_factory({
            ".gitignore": "generated/\n",
            "src/Keep.java": "class Keep {}",
            "generated/Skip.java": "class Skip {}",
        }, git=True)
        (proj / "src" / "Untracked.java").write_text("class Untracked {}")
        assert discover_files(proj, [".java"]) == ["src/Keep.java", "src/Untracked.java"]


class TestMigrationOrder:
    PATHS = [
        "db/V10__add_index.sql",
        "db/V2__users.sql",
        "db/V1__init.sql",
        "db/V1_1__patch.sql",
    ]

    def test_lexical(self):
        assert _order(self.PATHS, "lexical") == [
            "db/V10__add_index.sql",
            "db/V1_1__patch.sql",
            "db/V1__init.sql",
            "db/V2__users.sql",
        ]

    def test_natural(self):
        paths = [p for p in self.PATHS if "V1_1" not in p]
        assert _order(paths, "natural") == [
            "db/V1__init.sql",
            "db/V2__users.sql",
            "db/V10__add_index.sql",
        ]

    def test_basename_before_directory(self):
        paths = ["z/V1__a.sql", "a/V2__b.sql"]
        assert _order(paths, "lexical") == ["z/V1__a.sql", "a/V2__b.sql"]

    def test_same_basename_falls_back_to_path(self):
        paths = ["module_b/V1__init.sql", "module_a/V1__init.sql"]
        assert _order(paths, "natural") == ["module_a/V1__init.sql", "module_b/V1__init.sql"]

    def test_unknown_mode(self):
        with pytest.raises(ValueError, match="unknown migration order"):
            migration_sort_key("chronological")
