"""
Packaging pipeline: turns a source directory and the project's main block
into one self-extracting executable.

Steps, in order: archive the source tree, generate the C runtime stub,
embed the archive as a C byte array, compile both with the native
toolchain. The intermediates are removed whatever the outcome.
"""

import logging
import os
import re
import shlex
import shutil
import subprocess
import zipfile
from pathlib import Path

from lightpath.errors import ArchiveError, CodegenError, CompileError

logger = logging.getLogger(__name__)

PAYLOAD_SYMBOL = "source_data"
BYTES_PER_LINE = 12


def _is_link_loop(root, name) -> bool:
    """True when ``root/name`` is a symlink back to ``root`` or one of its ancestors."""
    path = os.path.join(root, name)
    if not os.path.islink(path):
        return False
    target = os.path.realpath(path)
    real_root = os.path.realpath(root)
    if real_root == target or real_root.startswith(target.rstrip(os.sep) + os.sep):
        logger.warning("Skipping %s, it links back to %s", path, target)
        return True
    return False


def archive_source(source_dir, archive_path) -> Path:
    """Zip the full contents of ``source_dir`` into ``archive_path``.

    Symlinked files and directories are stored as their targets.
    """
    source_dir = Path(source_dir)
    archive_path = Path(archive_path)
    logger.info("Packing %s into %s", source_dir, archive_path)

    try:
        with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as archive:
            for root, dirs, files in os.walk(source_dir, followlinks=True):
                dirs[:] = sorted(d for d in dirs if not _is_link_loop(root, d))
                relative_root = Path(root).relative_to(source_dir)
                if relative_root != Path("."):
                    archive.write(root, relative_root.as_posix())
                for name in sorted(files):
                    archive.write(Path(root) / name, (relative_root / name).as_posix())
    except (OSError, zipfile.BadZipFile) as e:
        raise ArchiveError(f"Zip of {source_dir} failed: {e}") from e

    return archive_path


def escape_c_string(text: str) -> str:
    """Escape text for use inside a C string literal."""
    result = []
    for byte in text.encode("utf-8", "surrogateescape"):
        if byte == ord("\\"):
            result.append("\\\\")
        elif byte == ord('"'):
            result.append('\\"')
        elif byte == ord("\n"):
            result.append("\\n")
        elif byte == ord("\r"):
            result.append("\\r")
        elif byte == ord("\t"):
            result.append("\\t")
        elif byte < 32 or byte > 126:
            result.append(f"\\{byte:03o}")
        else:
            result.append(chr(byte))
    return "".join(result)


def generate_runtime_source(project) -> str:
    """
    Generate the C source of the self-extracting runtime stub.

    At run time the stub unpacks the embedded archive into a fresh temporary
    directory and runs the main block's commands in order. A command stamped
    with the "application" path mode runs inside the temporary directory,
    any other mode runs in the directory the stub was started from. The
    temporary directory is removed on every exit path.
    """
    symbol = PAYLOAD_SYMBOL
    lines = [
        "/*",
        " * LightPath runtime - generated, do not edit",
        " */",
        "",
        "#include <stdio.h>",
        "#include <stdlib.h>",
        "#include <string.h>",
        "#include <unistd.h>",
        "",
        f"extern unsigned char {symbol}[];",
        f"extern unsigned int {symbol}_len;",
        "",
        "static int run_command(const char *command)",
        "{",
        "    return system(command);",
        "}",
        "",
        "static void enter_directory(const char *path)",
        "{",
        "    if (chdir(path) != 0) {",
        "        perror(path);",
        "    }",
        "}",
        "",
        "static void remove_tree(const char *path)",
        "{",
        "    char command[4200];",
        "    snprintf(command, sizeof(command), \"rm -rf '%s'\", path);",
        "    run_command(command);",
        "}",
        "",
        "static int extract_and_run(void)",
        "{",
        "    char temp_dir[] = \"/tmp/lightpath_XXXXXX\";",
        "    char old_cwd[4096];",
        "    char zip_path[4200];",
        "    char unzip_command[4300];",
        "    FILE *zip_file;",
        "    size_t written;",
        "",
        "    if (getcwd(old_cwd, sizeof(old_cwd)) == NULL) {",
        "        return 1;",
        "    }",
        "    if (mkdtemp(temp_dir) == NULL) {",
        "        return 1;",
        "    }",
        "",
        "    snprintf(zip_path, sizeof(zip_path), \"%s/app.zip\", temp_dir);",
        "    zip_file = fopen(zip_path, \"wb\");",
        "    if (zip_file == NULL) {",
        "        remove_tree(temp_dir);",
        "        return 1;",
        "    }",
        f"    written = fwrite({symbol}, 1, {symbol}_len, zip_file);",
        "    fclose(zip_file);",
        f"    if (written != {symbol}_len) {{",
        "        remove_tree(temp_dir);",
        "        return 1;",
        "    }",
        "",
        "    snprintf(unzip_command, sizeof(unzip_command),",
        "             \"cd '%s' && unzip -q app.zip >/dev/null 2>&1\", temp_dir);",
        "    if (run_command(unzip_command) != 0) {",
        "        remove_tree(temp_dir);",
        "        return 1;",
        "    }",
        "",
    ]

    for command in project.main:
        directory = "temp_dir" if command.runs_in_application else "old_cwd"
        lines.append(f"    enter_directory({directory});")
        lines.append(f'    run_command("{escape_c_string(command.text)}");')

    lines.extend(
        [
            "",
            "    enter_directory(old_cwd);",
            "    remove_tree(temp_dir);",
            "    return 0;",
            "}",
            "",
            "int main(void)",
            "{",
            "    return extract_and_run();",
            "}",
            "",
        ]
    )
    return "\n".join(lines)


def write_runtime_source(project, stub_path) -> Path:
    stub_path = Path(stub_path)
    logger.info("Generating runtime stub %s", stub_path)
    try:
        stub_path.write_text(generate_runtime_source(project), encoding="utf-8")
    except OSError as e:
        raise CodegenError(f"Cannot create runtime file {stub_path}: {e}") from e
    return stub_path


def format_byte_array(data: bytes, bytes_per_line: int = BYTES_PER_LINE) -> str:
    """Format binary data as a C array literal plus its length constant."""
    rows = []
    for i in range(0, len(data), bytes_per_line):
        chunk = data[i : i + bytes_per_line]
        rows.append("  " + ", ".join(f"0x{b:02x}" for b in chunk))
    body = ",\n".join(rows)
    return (
        f"unsigned char {PAYLOAD_SYMBOL}[] = {{\n{body}\n}};\n"
        f"unsigned int {PAYLOAD_SYMBOL}_len = {len(data)};\n"
    )


def _sanitize_name(name: str) -> str:
    """Mirror xxd's conversion of a file name to a C identifier."""
    return "".join(c if c.isalnum() else "_" for c in name)


def _embed_with_xxd(archive_path: Path):
    """Return xxd's rendering of the archive, or None when xxd is unusable."""
    xxd = shutil.which("xxd")
    if xxd is None:
        logger.debug("xxd not found, emitting the byte array directly")
        return None

    try:
        result = subprocess.run(
            [xxd, "-i", archive_path.name],
            cwd=archive_path.parent,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        logger.debug("xxd could not be run: %s", e)
        return None
    if result.returncode != 0:
        logger.debug("xxd failed with status %d", result.returncode)
        return None

    symbol = _sanitize_name(archive_path.name)
    return re.sub(rf"\b{re.escape(symbol)}(?=(_len)?\b)", PAYLOAD_SYMBOL, result.stdout)


def write_embedded_data(archive_path, data_path, use_xxd: bool = True) -> Path:
    """
    Write a C source defining the archive bytes and their length.

    Args:
        archive_path: Archive to embed
        data_path: C file to write
        use_xxd: Try the external xxd utility before the built-in emitter

    Returns:
        The written data path
    """
    archive_path = Path(archive_path)
    data_path = Path(data_path)
    logger.info("Embedding %s into %s", archive_path, data_path)

    try:
        source = _embed_with_xxd(archive_path) if use_xxd else None
        if source is None:
            source = format_byte_array(archive_path.read_bytes())
        data_path.write_text(source, encoding="utf-8")
    except OSError as e:
        raise CodegenError(f"Cannot process zip file {archive_path}: {e}") from e
    return data_path


def compile_binary(config) -> Path:
    """Compile the stub and embedded data into ``config.output_path``."""
    command = shlex.split(config.compiler) + [
        "-o",
        str(config.output_path),
        str(config.stub_path),
        str(config.data_path),
    ]
    logger.info("Compiling %s", config.output_path)
    logger.debug("Compiler command: %s", " ".join(command))

    try:
        result = subprocess.run(
            command, cwd=config.workdir, capture_output=True, text=True
        )
    except OSError as e:
        raise CompileError(f"Cannot run compiler '{config.compiler}': {e}") from e

    if result.returncode != 0:
        message = f"Binary compilation failed with status {result.returncode}"
        if result.stderr.strip():
            message += f": {result.stderr.strip()}"
        raise CompileError(message)

    return config.output_path


def remove_intermediates(paths):
    for path in paths:
        try:
            Path(path).unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove %s: %s", path, e)


def package_project(project, config) -> Path:
    """
    Run the full packaging pipeline for ``project``.

    Returns:
        Path of the compiled executable
    """
    # Only files a step has started writing are removed afterwards.
    written = []
    try:
        written.append(config.archive_path)
        archive_source(config.source_path, config.archive_path)
        written.append(config.stub_path)
        write_runtime_source(project, config.stub_path)
        written.append(config.data_path)
        write_embedded_data(config.archive_path, config.data_path)
        return compile_binary(config)
    finally:
        remove_intermediates(written)
