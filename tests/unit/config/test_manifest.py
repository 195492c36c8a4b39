"""
Unit tests for the dub manifest reader.
"""

import json

import pytest

from dubsense.config.compilers import BuildPlatform
from dubsense.config.manifest import BUILTIN_BUILD_TYPES, DubManifest, ManifestError

LINUX_DMD = BuildPlatform(
    platform=("linux", "posix"),
    architecture=("x86_64",),
    compiler="dmd",
    compiler_binary="dmd",
)
WINDOWS_LDC = BuildPlatform(
    platform=("windows",),
    architecture=("x86",),
    compiler="ldc",
    compiler_binary="ldc2",
)


def write_json(project_dir, recipe):
    (project_dir / "dub.json").write_text(json.dumps(recipe))


class TestFindManifest:
    """Recipe discovery."""

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(ManifestError, match="No package manifest found"):
            DubManifest(tmp_path)

    def test_json_preferred_over_sdl(self, tmp_path):
        write_json(tmp_path, {"name": "from-json"})
        (tmp_path / "dub.sdl").write_text('name "from-sdl"\n')

        assert DubManifest(tmp_path).name == "from-json"

    def test_legacy_package_json(self, tmp_path):
        (tmp_path / "package.json").write_text(json.dumps({"name": "legacy"}))

        assert DubManifest(tmp_path).name == "legacy"


class TestJsonManifest:
    """dub.json recipes."""

    @pytest.fixture
    def manifest(self, tmp_path):
        write_json(
            tmp_path,
            {
                "name": "myapp",
                "targetType": "executable",
                "dependencies": {
                    "vibe-d": "~>0.9.5",
                    "localdep": {"path": "../localdep"},
                    "pinned": {"version": "1.2.3", "optional": True},
                },
                "configurations": [
                    {"name": "application", "targetType": "executable"},
                    {"name": "windows-only", "platforms": ["windows"]},
                    {"name": "unittest", "dependencies": {"unit-threaded": "~>2.0"}},
                ],
                "buildTypes": {"ci": {"buildOptions": ["unittests"]}, "debug": {}},
            },
        )
        return DubManifest(tmp_path)

    def test_name_and_target(self, manifest):
        assert manifest.name == "myapp"
        assert manifest.target_type == "executable"

    def test_configurations_in_declaration_order(self, manifest):
        assert manifest.get_configurations() == ["application", "windows-only", "unittest"]

    def test_has_configuration(self, manifest):
        assert manifest.has_configuration("unittest")
        assert not manifest.has_configuration("doesNotExist")
        assert not manifest.has_configuration("")

    def test_platforms_are_read(self, manifest):
        assert manifest.configurations[1].platforms == ["windows"]
        assert manifest.configurations[0].target_type == "executable"

    def test_build_types_builtin_then_custom(self, manifest):
        build_types = manifest.get_build_types()

        assert build_types[: len(BUILTIN_BUILD_TYPES)] == BUILTIN_BUILD_TYPES
        assert build_types[len(BUILTIN_BUILD_TYPES):] == ["ci"]

    def test_dependency_specs(self, manifest):
        assert manifest.dependencies == {
            "vibe-d": "~>0.9.5",
            "localdep": "path:../localdep",
            "pinned": "1.2.3",
            "unit-threaded": "~>2.0",
        }
        assert manifest.get_dependency_names() == ["vibe-d", "localdep", "pinned", "unit-threaded"]

    def test_invalid_json(self, tmp_path):
        (tmp_path / "dub.json").write_text("{ not json")

        with pytest.raises(ManifestError, match="Failed to parse"):
            DubManifest(tmp_path)

    def test_recipe_must_be_object(self, tmp_path):
        write_json(tmp_path, ["myapp"])

        with pytest.raises(ManifestError, match="must be an object"):
            DubManifest(tmp_path)

    def test_configuration_without_name(self, tmp_path):
        write_json(tmp_path, {"name": "x", "configurations": [{"targetType": "library"}]})

        with pytest.raises(ManifestError, match="without a name"):
            DubManifest(tmp_path)


class TestSdlManifest:
    """dub.sdl recipes."""

    SDL = """\
name "mylib"
description "A library" // trailing comment
targetType "library"
# hash comment
dependency "vibe-d" version="~>0.9"
dependency "local" path="../local"
/* block
   comment */
configuration "library" {
    targetType "library"
}
configuration "posix-tests" {
    platforms "posix" "osx"
    dependency "silly" version="~>1.1"
}
buildType "ci" {
    buildOptions "debugMode" "unittests"
}
-- dash comment
"""

    @pytest.fixture
    def manifest(self, tmp_path):
        (tmp_path / "dub.sdl").write_text(self.SDL)
        return DubManifest(tmp_path)

    def test_name(self, manifest):
        assert manifest.name == "mylib"
        assert manifest.target_type == "library"

    def test_configurations(self, manifest):
        assert manifest.get_configurations() == ["library", "posix-tests"]
        assert manifest.configurations[1].platforms == ["posix", "osx"]

    def test_custom_build_type(self, manifest):
        assert manifest.get_build_types()[-1] == "ci"

    def test_dependencies(self, manifest):
        assert manifest.dependencies == {
            "vibe-d": "~>0.9",
            "local": "path:../local",
            "silly": "~>1.1",
        }

    def test_block_tags_inside_build_type_are_ignored(self, manifest):
        assert "buildOptions" not in manifest.get_configurations()

    def test_unbalanced_braces(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "x"\n}\n')

        with pytest.raises(ManifestError, match="Unbalanced"):
            DubManifest(tmp_path)

    def test_unterminated_string(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "x\n')

        with pytest.raises(ManifestError, match="line 1: unterminated string"):
            DubManifest(tmp_path)

    def test_unterminated_block_comment(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "x"\n/* never closed\n')

        with pytest.raises(ManifestError, match="line 2: unterminated comment"):
            DubManifest(tmp_path)

    def test_missing_closing_brace(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "x"\nconfiguration "a" {\n')

        with pytest.raises(ManifestError, match="missing '}' for 'configuration'"):
            DubManifest(tmp_path)

    def test_quotes_inside_comments(self, tmp_path):
        (tmp_path / "dub.sdl").write_text(
            'name "x"\n'
            "// don't build docs here\n"
            '-- the "old" layout\n'
            "# it's fine\n"
            "/* a \"quoted\" note\n   that's long */\n"
            'targetType "executable"\n'
        )
        manifest = DubManifest(tmp_path)

        assert manifest.name == "x"
        assert manifest.target_type == "executable"

    def test_comment_markers_inside_strings(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "x"\ndependency "y" path="//server/share/y"\n')

        assert DubManifest(tmp_path).dependencies == {"y": "path://server/share/y"}

    def test_one_line_blocks(self, tmp_path):
        (tmp_path / "dub.sdl").write_text(
            'name "x"\n'
            'configuration "win" { platforms "windows" }\n'
            'configuration "posix" { platforms "posix"; targetType "executable" }\n'
        )
        manifest = DubManifest(tmp_path)

        assert manifest.get_configurations() == ["win", "posix"]
        assert manifest.configurations[0].platforms == ["windows"]
        assert manifest.configurations[1].target_type == "executable"
        assert manifest.get_default_configuration(LINUX_DMD) == "posix"

    def test_semicolon_separated_statements(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "x"; targetType "library"\n')
        manifest = DubManifest(tmp_path)

        assert manifest.name == "x"
        assert manifest.target_type == "library"

    def test_escapes_and_raw_strings(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "a\\"b"\nconfiguration `raw\\name`\n')
        manifest = DubManifest(tmp_path)

        assert manifest.name == 'a"b'
        assert manifest.get_configurations() == ["raw\\name"]

    def test_line_continuation(self, tmp_path):
        (tmp_path / "dub.sdl").write_text('name "x"\nconfiguration "c" {\n    platforms "linux" \\\n        "osx"\n}\n')

        assert DubManifest(tmp_path).configurations[0].platforms == ["linux", "osx"]

    def test_nested_blocks_are_ignored(self, tmp_path):
        (tmp_path / "dub.sdl").write_text(
            'name "x"\n'
            "subPackage {\n"
            '    name "sub"\n'
            '    configuration "inner" { platforms "windows" }\n'
            "}\n"
            'configuration "outer"\n'
        )
        manifest = DubManifest(tmp_path)

        assert manifest.name == "x"
        assert manifest.get_configurations() == ["outer"]


class TestDefaultConfiguration:
    """Configuration dub selects when none is chosen."""

    def test_first_matching_configuration(self, tmp_path):
        write_json(
            tmp_path,
            {
                "name": "x",
                "configurations": [
                    {"name": "win", "platforms": ["windows"]},
                    {"name": "posix", "platforms": ["posix"]},
                    {"name": "any"},
                ],
            },
        )
        manifest = DubManifest(tmp_path)

        assert manifest.get_default_configuration(LINUX_DMD) == "posix"
        assert manifest.get_default_configuration(WINDOWS_LDC) == "win"

    def test_without_platform_first_configuration_wins(self, tmp_path):
        write_json(tmp_path, {"name": "x", "configurations": [{"name": "win", "platforms": ["windows"]}]})

        assert DubManifest(tmp_path).get_default_configuration(None) == "win"

    def test_no_supported_configuration(self, tmp_path):
        write_json(tmp_path, {"name": "x", "configurations": [{"name": "win", "platforms": ["windows"]}]})

        assert DubManifest(tmp_path).get_default_configuration(LINUX_DMD) is None

    def test_compound_platform_spec(self, tmp_path):
        write_json(
            tmp_path,
            {"name": "x", "configurations": [{"name": "ldc-win", "platforms": ["windows-ldc"]}, {"name": "other"}]},
        )
        manifest = DubManifest(tmp_path)

        assert manifest.get_default_configuration(WINDOWS_LDC) == "ldc-win"
        assert manifest.get_default_configuration(LINUX_DMD) == "other"

    def test_implicit_library(self, tmp_path):
        write_json(tmp_path, {"name": "x"})
        manifest = DubManifest(tmp_path)

        assert manifest.get_configurations() == ["library"]
        assert manifest.get_default_configuration(LINUX_DMD) == "library"

    def test_implicit_application_from_entry_file(self, tmp_path):
        write_json(tmp_path, {"name": "x"})
        (tmp_path / "source").mkdir()
        (tmp_path / "source" / "app.d").write_text("void main() {}\n")

        assert DubManifest(tmp_path).get_configurations() == ["application"]

    def test_implicit_application_from_target_type(self, tmp_path):
        write_json(tmp_path, {"name": "x", "targetType": "executable"})

        assert DubManifest(tmp_path).get_default_configuration() == "application"
