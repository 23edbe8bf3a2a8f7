"""
Tests for the LightPath descriptor parser.

Most behaviour is checked against both front ends: the lenient scanner
parser (default) and the strict Lark parser.
"""

import os
import tempfile

import pytest

from lightpath import LightPath, TOOL_VERSION
from lightpath.errors import (
    DescriptorReadError,
    DescriptorSyntaxError,
    InvalidVersionError,
    MissingDescriptorFileError,
    VersionIncompatibilityError,
)
from lightpath.lightpath_parser import parse_descriptor, parse_tree
from lightpath.model import (
    APPLICATION_PATH_MODE,
    CURRENT_PATH_MODE,
    MAX_COMMANDS,
    MAX_CUSTOM_FUNCTIONS,
    Command,
)


SAMPLE_DESCRIPTOR = """
// LightPath sample
build {
    build_version = "1"
    command "make all"
    build
}

main {
    command "./app --setup"
    path_mode = "current"
    command "ls"
}

clean {
    path_mode = "current"
    command "rm -rf out"
}
"""


@pytest.fixture(params=[False, True], ids=["lenient", "strict"])
def strict(request):
    return request.param


class TestBlockClassification:
    """Reserved and custom blocks."""

    def test_sample_descriptor(self, strict):
        """Test parsing a descriptor with build, main and one custom block."""
        project = parse_descriptor(SAMPLE_DESCRIPTOR, strict=strict)

        assert [c.text for c in project.build] == ["make all"]
        assert project.build.has_build_marker is True
        assert project.build.required_tool_version == 1
        assert [c.text for c in project.main] == ["./app --setup", "ls"]
        assert project.custom_names == ["clean"]
        assert project.find_custom("clean").final_path_mode == "current"

    def test_empty_descriptor(self, strict):
        """Test that an empty descriptor gives an empty project."""
        project = parse_descriptor("// nothing here\n", strict=strict)
        assert len(project.build) == 0
        assert len(project.main) == 0
        assert project.custom == []

    def test_no_build_marker(self, strict):
        """Test that a build block without the bare 'build' statement has no marker."""
        project = parse_descriptor('build { command "echo hi" }', strict=strict)
        assert project.build.has_build_marker is False
        assert [c.text for c in project.build] == ["echo hi"]

    def test_marker_in_custom_block(self, strict):
        """Test that the marker is recorded on whichever block contains it."""
        project = parse_descriptor("deploy { build }", strict=strict)
        assert project.find_custom("deploy").has_build_marker is True
        assert project.build.has_build_marker is False

    def test_repeated_build_block_appends(self, strict):
        """Test that a second build block adds to the same block."""
        project = parse_descriptor(
            'build { command "a" } build { command "b" }', strict=strict
        )
        assert [c.text for c in project.build] == ["a", "b"]

    def test_duplicate_custom_names_keep_declaration_order(self, strict):
        """Test that duplicate custom names are kept and the first one is found."""
        project = parse_descriptor(
            'tool { command "first" } tool { command "second" }', strict=strict
        )
        assert project.custom_names == ["tool", "tool"]
        assert [c.text for c in project.find_custom("tool")] == ["first"]

    def test_missing_brace_is_fatal(self, strict):
        """Test that a block name without '{' aborts the parse."""
        with pytest.raises(DescriptorSyntaxError):
            parse_descriptor('build command "x"', strict=strict)


class TestContextStamping:
    """Commands carry the context in effect when they were declared."""

    def test_path_mode_stamping(self, strict):
        """Test that a later path_mode never changes an earlier command."""
        project = parse_descriptor(
            'main { command "a" path_mode = "current" command "b" }', strict=strict
        )
        first, second = project.main.commands

        assert first == Command("a", 1, APPLICATION_PATH_MODE)
        assert second == Command("b", 1, CURRENT_PATH_MODE)
        assert not second.runs_in_application
        assert project.main.final_path_mode == CURRENT_PATH_MODE

    def test_build_version_stamping(self, strict):
        """Test that build_version stamps later commands only."""
        project = parse_descriptor(
            'tool { command "a" build_version = "7" command "b" }', strict=strict
        )
        block = project.find_custom("tool")

        assert [c.build_version_at_declaration for c in block] == [1, 7]
        assert block.final_build_version == 7
        assert block.required_tool_version == 1

    def test_context_resets_per_block(self, strict):
        """Test that each block starts from the default context."""
        project = parse_descriptor(
            'main { path_mode = "current" build_version = "3" }\n'
            'main { command "x" }',
            strict=strict,
        )
        (command,) = project.main.commands
        assert command.path_mode_at_declaration == "application"
        assert command.build_version_at_declaration == 1
        assert project.main.final_path_mode == CURRENT_PATH_MODE
        assert project.main.final_build_version == 3

    def test_commands_are_immutable(self):
        """Test that a recorded command cannot be modified."""
        project = parse_descriptor('main { command "a" }')
        with pytest.raises(Exception):
            project.main.commands[0].path_mode_at_declaration = "current"


class TestVersionGate:
    """The build block's build_version must not exceed the tool version."""

    def test_supported_version(self, strict):
        """Test that the running tool version is accepted."""
        project = parse_descriptor(
            f'build {{ build_version = "{TOOL_VERSION}" }}', strict=strict
        )
        assert project.build.required_tool_version == TOOL_VERSION

    def test_newer_version_rejected(self, strict):
        """Test that a version above the tool's aborts the parse."""
        with pytest.raises(VersionIncompatibilityError) as excinfo:
            parse_descriptor(
                f'build {{ command "x" build_version = "{TOOL_VERSION + 1}" }}',
                strict=strict,
            )
        assert excinfo.value.required == TOOL_VERSION + 1
        assert excinfo.value.running == TOOL_VERSION

    def test_gate_uses_given_tool_version(self):
        """Test that the gate compares against the tool_version argument."""
        project = parse_descriptor('build { build_version = "3" }', tool_version=3)
        assert project.build.required_tool_version == 3

    def test_custom_block_version_not_gated(self, strict):
        """Test that build_version outside the build block is only metadata."""
        project = parse_descriptor('tool { build_version = "99" }', strict=strict)
        assert project.find_custom("tool").final_build_version == 99

    def test_non_numeric_version_rejected(self, strict):
        """Test that a non-numeric build_version is reported, not coerced to zero."""
        with pytest.raises(InvalidVersionError) as excinfo:
            parse_descriptor('main {\n build_version = "latest" }', strict=strict)
        assert excinfo.value.line == 2


class TestLenientParsing:
    """Malformed statements are skipped by the default parser."""

    def test_unknown_statements_skipped(self):
        """Test that unknown identifiers and stray tokens are ignored."""
        project = parse_descriptor(
            'main { echo "x" ; = command "kept" colour = "blue" }'
        )
        assert [c.text for c in project.main] == ["kept"]

    def test_missing_equals_skipped(self):
        """Test that an assignment without '=' leaves the context unchanged."""
        project = parse_descriptor('main { path_mode "current" command "a" }')
        assert project.main.commands[0].path_mode_at_declaration == "application"

    def test_consumed_tokens_not_reexamined(self):
        """Test that a token eaten by a malformed statement is not reparsed."""
        project = parse_descriptor('main { command command "a" }')
        # The first 'command' swallows the second; "a" is then a stray string.
        assert len(project.main) == 0

    def test_stray_top_level_tokens_ignored(self):
        """Test that non-identifier tokens between blocks are skipped."""
        project = parse_descriptor('"junk" } main { command "a" }')
        assert [c.text for c in project.main] == ["a"]

    def test_unterminated_block(self):
        """Test that end of input closes an open block."""
        project = parse_descriptor('main { command "a"')
        assert [c.text for c in project.main] == ["a"]


class TestStrictParsing:
    """The Lark-backed parser reports malformed statements."""

    @pytest.mark.parametrize(
        "text",
        [
            'main { echo "x" }',
            'main { colour = "blue" }',
            "main { verbose }",
            'main { path_mode "current" }',
            "main { command }",
            'main { command "a"',
            'main { command "a" ; }',
            '"junk" main { }',
        ],
    )
    def test_malformed_descriptor_rejected(self, text):
        """Test that each malformed shape raises DescriptorSyntaxError."""
        with pytest.raises(DescriptorSyntaxError):
            parse_descriptor(text, strict=True)

    def test_error_position(self):
        """Test that strict errors point at the offending token."""
        with pytest.raises(DescriptorSyntaxError) as excinfo:
            parse_descriptor('main {\n    command "a"\n    echo "b"\n}', strict=True)
        assert excinfo.value.line == 3
        assert excinfo.value.column == 5

    def test_parse_tree_shape(self):
        """Test the Lark tree for a small descriptor."""
        tree = parse_tree('main { command "a" path_mode = "current" build }')
        (block,) = tree.children
        statements = [child.data for child in block.children if hasattr(child, "data")]
        assert statements == ["invocation", "assignment", "marker"]

    def test_strict_and_lenient_agree(self):
        """Test that well-formed input gives identical projects in both modes."""
        assert parse_descriptor(SAMPLE_DESCRIPTOR) == parse_descriptor(
            SAMPLE_DESCRIPTOR, strict=True
        )


class TestCapacity:
    """Bounded command and custom function counts."""

    def test_command_cap(self, strict, caplog):
        """Test that commands beyond the cap are rejected and logged."""
        body = " ".join(f'command "c{i}"' for i in range(MAX_COMMANDS + 5))
        project = parse_descriptor(f"main {{ {body} }}", strict=strict)

        assert len(project.main) == MAX_COMMANDS
        assert project.main.commands[-1].text == f"c{MAX_COMMANDS - 1}"
        assert "at most" in caplog.text

    def test_custom_function_cap(self, strict, caplog):
        """Test that blocks beyond the cap are parsed but discarded."""
        blocks = "\n".join(
            f'f{i} {{ command "run{i}" }}' for i in range(MAX_CUSTOM_FUNCTIONS + 2)
        )
        project = parse_descriptor(blocks + '\nmain { command "after" }', strict=strict)

        assert project.custom_names == [f"f{i}" for i in range(MAX_CUSTOM_FUNCTIONS)]
        assert project.find_custom(f"f{MAX_CUSTOM_FUNCTIONS}") is None
        # The token stream stays in step after discarded blocks.
        assert [c.text for c in project.main] == ["after"]
        assert "discarded" in caplog.text


class TestLightPathFromFile:
    """The LightPath facade over a descriptor file."""

    def test_parse_file(self):
        """Test loading a descriptor from disk."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".path", delete=False) as f:
            f.write(SAMPLE_DESCRIPTOR)
            temp_file = f.name

        try:
            model = LightPath(from_file=temp_file)
            assert model.build.has_build_marker is True
            assert len(model.main) == 2
            assert model.custom_functions == ["clean"]
            assert str(model.config.workdir) == os.path.dirname(os.path.abspath(temp_file))
        finally:
            os.unlink(temp_file)

    def test_strict_file(self):
        """Test that strict parsing applies to files too."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".path", delete=False) as f:
            f.write('main { echo "x" }')
            temp_file = f.name

        try:
            assert len(LightPath(from_file=temp_file).main) == 0
            with pytest.raises(DescriptorSyntaxError):
                LightPath(from_file=temp_file, strict=True)
        finally:
            os.unlink(temp_file)

    def test_missing_file(self):
        """Test that a missing descriptor raises MissingDescriptorFileError."""
        with pytest.raises(MissingDescriptorFileError):
            LightPath(from_file="nonexistent_build.path")

    def test_from_file_required(self):
        """Test that from_file must be given."""
        with pytest.raises(ValueError):
            LightPath()

    def test_unreadable_file(self, monkeypatch):
        """Test that an OS error while reading becomes DescriptorReadError."""
        with tempfile.NamedTemporaryFile(mode="w", suffix=".path", delete=False) as f:
            f.write(SAMPLE_DESCRIPTOR)
            temp_file = f.name

        def refuse(*args, **kwargs):
            raise PermissionError("permission denied")

        try:
            monkeypatch.setattr("lightpath.main.open", refuse, raising=False)
            with pytest.raises(DescriptorReadError) as excinfo:
                LightPath(from_file=temp_file)
            assert "permission denied" in str(excinfo.value)
        finally:
            os.unlink(temp_file)

    def test_non_utf8_bytes_preserved(self):
        """Test that undecodable bytes survive into the command text."""
        with tempfile.NamedTemporaryFile(suffix=".path", delete=False) as f:
            f.write(b'main { command "echo \xe9t\xe9" }')
            temp_file = f.name

        try:
            (command,) = LightPath(from_file=temp_file).main.commands
            assert command.text.encode("utf-8", "surrogateescape") == b"echo \xe9t\xe9"
        finally:
            os.unlink(temp_file)
