"""Tests for loading file batches from disk and from generation manifests."""

import json

import pytest

from studio_publisher.publisher import (
    FileChange,
    InvalidFileBatchError,
    collect_directory,
    load_file_changes,
    load_generation_manifest,
)


@pytest.fixture
def project_dir(tmp_path):
    root = tmp_path / "site"
    (root / "src" / "components").mkdir(parents=True)
    (root / "node_modules" / "react").mkdir(parents=True)
    (root / "package.json").write_text('{"name": "site"}', encoding="utf-8")
    (root / "src" / "index.ts").write_text("export const x = 1;", encoding="utf-8")
    (root / "src" / "components" / "Hero.tsx").write_text(
        "export const Hero = () => <h1>こんにちは 👋</h1>;", encoding="utf-8"
    )
    (root / "node_modules" / "react" / "index.js").write_text("module.exports = {}")
    (root / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe")
    return root


class TestCollectDirectory:
    def test_collects_relative_posix_paths(self, project_dir):
        files = collect_directory(project_dir, ["node_modules"])
        assert [f.path for f in files] == [
            "package.json",
            "src/components/Hero.tsx",
            "src/index.ts",
        ]

    def test_reads_utf8_content(self, project_dir):
        files = {f.path: f.content for f in collect_directory(project_dir, ["node_modules"])}
        assert files["src/components/Hero.tsx"].endswith("<h1>こんにちは 👋</h1>;")

    def test_preserves_line_endings(self, project_dir):
        (project_dir / "windows.txt").write_bytes(b"line1\r\nline2\r\n")
        (project_dir / "classic-mac.txt").write_bytes(b"a\rb\r")

        files = {f.path: f.content for f in collect_directory(project_dir, ["node_modules"])}

        assert files["windows.txt"] == "line1\r\nline2\r\n"
        assert files["classic-mac.txt"] == "a\rb\r"
        assert files["windows.txt"].encode("utf-8") == (
            project_dir / "windows.txt"
        ).read_bytes()

    def test_skips_binary_files_with_warning(self, project_dir, caplog):
        with caplog.at_level("WARNING"):
            files = collect_directory(project_dir, ["node_modules"])
        assert "logo.png" not in [f.path for f in files]
        assert "Skipping non-UTF-8 file logo.png" in caplog.text

    def test_exclude_patterns_match_nested_directories(self, project_dir):
        files = collect_directory(project_dir, ["node_modules", "comp*"])
        assert [f.path for f in files] == ["package.json", "src/index.ts"]

    def test_honours_project_gitignore(self, project_dir):
        (project_dir / ".gitignore").write_text("# build output\n*.log\ncoverage/\n")
        (project_dir / "debug.log").write_text("noise")
        (project_dir / "coverage").mkdir()
        (project_dir / "coverage" / "index.html").write_text("<html/>")

        paths = [f.path for f in collect_directory(project_dir, ["node_modules"])]

        assert ".gitignore" in paths
        assert "debug.log" not in paths
        assert "coverage/index.html" not in paths
        assert "src/index.ts" in paths

    def test_without_excludes_includes_everything_textual(self, project_dir):
        paths = [f.path for f in collect_directory(project_dir)]
        assert "node_modules/react/index.js" in paths

    def test_missing_directory(self, tmp_path):
        with pytest.raises(InvalidFileBatchError, match="Not a directory"):
            collect_directory(tmp_path / "nope")


class TestGenerationManifest:
    def test_parses_generation_output(self, tmp_path):
        manifest = tmp_path / "generation.json"
        manifest.write_text(
            json.dumps(
                {
                    "componentName": "LandingPage",
                    "projectName": "landing",
                    "files": [
                        {"path": "/app/page.tsx", "content": "export default () => null"},
                        {"path": "README.md", "content": "# landing", "language": "md"},
                    ],
                    "explanation": "ignored",
                }
            ),
            encoding="utf-8",
        )

        result = load_generation_manifest(manifest)

        assert result.component_name == "LandingPage"
        assert result.project_name == "landing"
        assert result.to_file_changes() == [
            FileChange("app/page.tsx", "export default () => null"),
            FileChange("README.md", "# landing"),
        ]

    def test_invalid_json(self, tmp_path):
        manifest = tmp_path / "broken.json"
        manifest.write_text("{not json", encoding="utf-8")
        with pytest.raises(InvalidFileBatchError, match="Invalid JSON"):
            load_generation_manifest(manifest)

    def test_wrong_shape(self, tmp_path):
        manifest = tmp_path / "shape.json"
        manifest.write_text(json.dumps({"files": [{"path": "a.txt"}]}), encoding="utf-8")
        with pytest.raises(InvalidFileBatchError, match="Invalid manifest"):
            load_generation_manifest(manifest)


class TestLoadFileChanges:
    def test_directory_source(self, project_dir):
        files = load_file_changes(project_dir, ["node_modules"])
        assert len(files) == 3

    def test_manifest_source(self, tmp_path):
        manifest = tmp_path / "gen.json"
        manifest.write_text(
            json.dumps({"files": [{"path": "index.html", "content": "<p>hi</p>"}]}),
            encoding="utf-8",
        )
        assert load_file_changes(manifest) == [FileChange("index.html", "<p>hi</p>")]

    def test_other_files_are_rejected(self, tmp_path):
        source = tmp_path / "notes.txt"
        source.write_text("hello", encoding="utf-8")
        with pytest.raises(InvalidFileBatchError, match="directory or a .json manifest"):
            load_file_changes(source)
