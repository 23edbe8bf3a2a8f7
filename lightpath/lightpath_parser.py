"""
LightPath descriptor parser

Two front ends build the same Project model:

* ScannerProjectBuilder walks the token stream directly and silently skips
  statements it does not recognise. This is the default.
* LarkProjectBuilder walks a tree produced by a Lark LALR parser fed by the
  same scanner, and reports every malformed statement.

Both stamp each command with the block context in effect when it is
declared, and both enforce the tool version gate on the build block.
"""

import logging
import os

from lark import Lark, Tree
from lark.exceptions import UnexpectedInput

from lightpath.errors import (
    CapacityError,
    DescriptorSyntaxError,
    InvalidVersionError,
    VersionIncompatibilityError,
)
from lightpath.lightpath_lexer import (
    EOF,
    EQUALS,
    IDENTIFIER,
    LBRACE,
    RBRACE,
    STRING,
    DescriptorScanner,
    LarkDescriptorLexer,
)
from lightpath.model import (
    APPLICATION_PATH_MODE,
    DEFAULT_BUILD_VERSION,
    TOOL_VERSION,
    Command,
    FunctionBlock,
    Project,
)

logger = logging.getLogger(__name__)

COMMAND_KEYWORD = "command"
BUILD_VERSION_KEY = "build_version"
PATH_MODE_KEY = "path_mode"
BUILD_MARKER = "build"


class BaseProjectBuilder:
    """Shared block bookkeeping for both parser front ends."""

    def __init__(self, tool_version=TOOL_VERSION):
        self.project = Project()
        self.tool_version = tool_version
        self._block_name = None
        self._block = None
        self._current_version = DEFAULT_BUILD_VERSION
        self._current_path_mode = APPLICATION_PATH_MODE

    def _start_block(self, name):
        if name == "build":
            block = self.project.build
        elif name == "main":
            block = self.project.main
        else:
            try:
                block = self.project.add_custom(name)
            except CapacityError as e:
                logger.warning("%s", e)
                # Parse the body anyway so the token stream stays in step.
                block = FunctionBlock()

        self._block_name = name
        self._block = block
        self._current_version = DEFAULT_BUILD_VERSION
        self._current_path_mode = APPLICATION_PATH_MODE

    def _end_block(self):
        self._block_name = None
        self._block = None

    def _add_command(self, text):
        command = Command(text, self._current_version, self._current_path_mode)
        try:
            self._block.add_command(command)
        except CapacityError as e:
            logger.warning("%s", e)

    def _set_build_version(self, token):
        try:
            version = int(token.value)
        except ValueError:
            raise InvalidVersionError(token.value, token.line, token.column) from None

        self._current_version = version
        self._block.final_build_version = version

        if self._block_name == "build":
            self._block.required_tool_version = version
            if self.tool_version < version:
                raise VersionIncompatibilityError(version, self.tool_version)

    def _set_path_mode(self, value):
        self._current_path_mode = value
        self._block.final_path_mode = value

    def _mark_build(self):
        self._block.has_build_marker = True


class ScannerProjectBuilder(BaseProjectBuilder):
    """Lenient recursive-descent parser driven by DescriptorScanner."""

    def parse(self, text):
        scanner = DescriptorScanner(text)
        token = scanner.next_token()
        while token.type != EOF:
            # Anything other than a block name at the top level is ignored.
            if token.type == IDENTIFIER:
                self._parse_block(token, scanner)
            token = scanner.next_token()
        return self.project

    def _parse_block(self, name, scanner):
        token = scanner.next_token()
        if token.type != LBRACE:
            raise DescriptorSyntaxError(
                f"Expected '{{' after {name}", token.line, token.column
            )

        self._start_block(str(name))
        token = scanner.next_token()
        while token.type not in (RBRACE, EOF):
            if token.type == IDENTIFIER:
                self._parse_statement(token, scanner)
            token = scanner.next_token()
        self._end_block()

    def _parse_statement(self, keyword, scanner):
        # Tokens consumed by a malformed statement are dropped, not re-read.
        if keyword == COMMAND_KEYWORD:
            operand = scanner.next_token()
            if operand.type == STRING:
                self._add_command(operand.value)

        elif keyword in (BUILD_VERSION_KEY, PATH_MODE_KEY):
            if scanner.next_token().type != EQUALS:
                return
            operand = scanner.next_token()
            if operand.type != STRING:
                return
            if keyword == BUILD_VERSION_KEY:
                self._set_build_version(operand)
            else:
                self._set_path_mode(operand.value)

        elif keyword == BUILD_MARKER:
            self._mark_build()

        else:
            logger.debug(
                "Skipping unknown statement '%s' at line %d", keyword, keyword.line
            )


class LarkProjectBuilder(BaseProjectBuilder):
    """Strict builder over the parse tree from lightpath.lark."""

    def visit(self, tree):
        for child in tree.children:
            if isinstance(child, Tree) and child.data == "block":
                self._visit_block(child)
        return self.project

    def _visit_block(self, tree):
        self._start_block(str(tree.children[0]))
        for child in tree.children:
            if isinstance(child, Tree):
                self._visit_statement(child)
        self._end_block()

    def _visit_statement(self, tree):
        keyword = tree.children[0]

        if tree.data == "invocation":
            if keyword != COMMAND_KEYWORD:
                raise _unknown(keyword, "statement")
            self._add_command(tree.children[1].value)

        elif tree.data == "assignment":
            operand = tree.children[2]
            if keyword == BUILD_VERSION_KEY:
                self._set_build_version(operand)
            elif keyword == PATH_MODE_KEY:
                self._set_path_mode(operand.value)
            else:
                raise _unknown(keyword, "setting")

        elif tree.data == "marker":
            if keyword != BUILD_MARKER:
                raise _unknown(keyword, "statement")
            self._mark_build()


def _unknown(token, what):
    return DescriptorSyntaxError(f"Unknown {what} '{token}'", token.line, token.column)


def _describe_unexpected(error):
    token = getattr(error, "token", None)
    if token is None or token.type == "$END":
        found = "end of input"
    else:
        found = f"'{token}'"
    expected = sorted(getattr(error, "expected", None) or ())
    if expected:
        return f"Unexpected {found}, expected one of: {', '.join(expected)}"
    return f"Unexpected {found}"


def _load_lark_parser() -> Lark:
    """Load the strict descriptor parser from the packaged grammar file."""
    grammar_path = os.path.join(os.path.dirname(__file__), "grammars", "lightpath.lark")

    with open(grammar_path, "r") as f:
        grammar = f.read()

    return Lark(
        grammar,
        parser="lalr",
        lexer=LarkDescriptorLexer,
        start="start",
        propagate_positions=True,
    )


def parse_tree(text: str) -> Tree:
    """Parse descriptor text into a Lark tree, raising DescriptorSyntaxError."""
    parser = _load_lark_parser()
    try:
        return parser.parse(text)
    except UnexpectedInput as e:
        raise DescriptorSyntaxError(
            _describe_unexpected(e), getattr(e, "line", None), getattr(e, "column", None)
        ) from e


def parse_descriptor(text: str, strict=False, tool_version=TOOL_VERSION) -> Project:
    """
    Parse descriptor text into a Project.

    Args:
        text: Descriptor source
        strict: Report malformed statements instead of skipping them
        tool_version: Version of the running tool for the compatibility gate

    Returns:
        The parsed Project. No partial Project is returned on failure.
    """
    if strict:
        return LarkProjectBuilder(tool_version).visit(parse_tree(text))
    return ScannerProjectBuilder(tool_version).parse(text)
