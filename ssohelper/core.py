"""
Core shell-integration functions for sso-helper: managed config blocks and shell scripts.
"""

import logging
import os
import pwd
import re
import shutil
import sys
from collections import namedtuple
from importlib import resources
from pathlib import Path
from types import MappingProxyType

from .exceptions import CorruptedBlockError, MissingBindingError, UnsupportedShellError

logger = logging.getLogger(__name__)

PROGRAM_NAME = "sso-helper"

DEFAULT_START_MARKER = "# BEGIN_SSO_HELPER"
DEFAULT_END_MARKER = "# END_SSO_HELPER"

# New config files are created with this mode (before umask)
DEFAULT_FILE_MODE = 0o644

# Placeholders look like {{ Executable }}
PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")

# Scanner states
OUTSIDE_BLOCK = "outside"
INSIDE_BLOCK = "inside"

BlockScan = namedtuple("BlockScan", ["prefix", "block", "suffix"])

ShellScript = namedtuple("ShellScript", ["template", "path"])

# Flags written after the end marker by install
FLAG_CREATED = "created"
FLAG_NEWLINE_ADDED = "newline-added"
END_MARKER_FLAGS = (FLAG_CREATED, FLAG_NEWLINE_ADDED)


def render_template(template, bindings, name=None):
    """
    Substitute every {{ Name }} placeholder in a template.

    Args:
        template: Template text
        bindings: Mapping of placeholder name to replacement string
        name: Optional template name, used in error messages

    Returns:
        str: Rendered text

    Raises:
        MissingBindingError: If a referenced placeholder has no binding
    """
    # Check everything before substituting so a partial render is never returned
    for match in PLACEHOLDER_RE.finditer(template):
        if match.group(1) not in bindings:
            raise MissingBindingError(match.group(1), name)

    return PLACEHOLDER_RE.sub(lambda m: str(bindings[m.group(1)]), template)


def split_lines(content):
    """
    Split text into lines, keeping line terminators.

    Only "\\n" ends a line, so "\\r\\n" files keep the "\\r" on each line and
    other separators (form feed, lone "\\r") stay part of the line.
    """
    parts = content.split("\n")
    lines = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        lines.append(parts[-1])
    return lines


def line_ending(line):
    """Return the terminator of a line: "\\r\\n", "\\n" or ""."""
    if line.endswith("\r\n"):
        return "\r\n"
    if line.endswith("\n"):
        return "\n"
    return ""


def detect_newline(lines):
    """Return the newline convention of a file, "\\n" if it has no terminated lines."""
    for line in lines:
        ending = line_ending(line)
        if ending:
            return ending
    return "\n"


def is_end_marker(text, end_marker):
    """Check a stripped line against the end marker, with or without an install flag."""
    if text == end_marker:
        return True
    head, _, flag = text.rpartition(" ")
    return head == end_marker and flag in END_MARKER_FLAGS


def end_marker_flag(line, end_marker):
    """Return the install flag on an end marker line, or None."""
    text = line.strip()
    if text == end_marker:
        return None
    return text.rpartition(" ")[2]


def scan_block(lines, start_marker, end_marker, path=None):
    """
    Locate the managed block in a sequence of lines.

    Walks the lines once with two states, OUTSIDE_BLOCK and INSIDE_BLOCK.
    Marker lines match after surrounding whitespace is stripped.

    Args:
        lines: Iterable of lines (terminators included)
        start_marker: Line that opens the block
        end_marker: Line that closes the block
        path: File the lines came from, for error messages

    Returns:
        BlockScan: prefix lines, block lines (markers included), suffix lines.
        block is empty when the file has no managed block.

    Raises:
        CorruptedBlockError: If the markers do not pair up, or more than one block exists
    """
    state = OUTSIDE_BLOCK
    prefix, block, suffix = [], [], []
    start_line = 0

    for lineno, line in enumerate(lines, start=1):
        text = line.strip()

        if state == OUTSIDE_BLOCK:
            if text == start_marker:
                if block:
                    raise CorruptedBlockError(
                        path, lineno, f"second managed block found (first starts at line {start_line})"
                    )
                state = INSIDE_BLOCK
                start_line = lineno
                block.append(line)
            elif is_end_marker(text, end_marker):
                raise CorruptedBlockError(path, lineno, "end marker found without a start marker")
            elif block:
                suffix.append(line)
            else:
                prefix.append(line)
        else:
            if text == start_marker:
                raise CorruptedBlockError(
                    path, lineno, f"start marker found inside the block opened at line {start_line}"
                )
            block.append(line)
            if is_end_marker(text, end_marker):
                state = OUTSIDE_BLOCK

    if state == INSIDE_BLOCK:
        raise CorruptedBlockError(path, start_line, "start marker has no matching end marker")

    return BlockScan(prefix, block, suffix)


def read_config_file(path):
    """
    Read a text file without translating line endings.

    Returns:
        str: File contents, or None if the file does not exist
    """
    try:
        with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as f:
            return f.read()
    except FileNotFoundError:
        return None


def write_config_file(path, content):
    """
    Write a text file in place, creating it and its parent directories if needed.

    Existing files keep their mode and ownership since they are truncated, not replaced.
    """
    Path(path).parent.mkdir(parents=True, exist_ok=True)

    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, DEFAULT_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as f:
        f.write(content)


class ConfigBlockEditor:
    """
    Installs, updates and removes a delimited block of generated text in a file.

    Everything outside the start/end marker lines is left byte-for-byte as found.
    """

    def __init__(self, start_marker=DEFAULT_START_MARKER, end_marker=DEFAULT_END_MARKER):
        start_marker = start_marker.strip()
        end_marker = end_marker.strip()
        if not start_marker or not end_marker:
            raise ValueError("block markers cannot be empty")
        if start_marker == end_marker:
            raise ValueError("start and end markers must differ")
        if "\n" in start_marker or "\n" in end_marker:
            raise ValueError("block markers must be a single line")
        self.start_marker = start_marker
        self.end_marker = end_marker

    def render(self, template, bindings, name=None):
        """Render a template; see render_template()."""
        return render_template(template, bindings, name)

    def write_to(self, template, bindings, output, name=None):
        """
        Render a template and write it to a stream, without markers.

        Used to print the script for immediate sourcing in the running shell.
        """
        source = self.render(template, bindings, name)
        if not source.endswith("\n"):
            source += "\n"
        output.write(source)

    def _block_lines(self, rendered, newline, flag, final):
        """Wrap rendered text in marker lines using the file's newline convention."""
        body = rendered.splitlines()
        for line in body:
            text = line.strip()
            if text == self.start_marker or is_end_marker(text, self.end_marker):
                raise ValueError(f"rendered text contains a block marker line: {text}")

        end = f"{self.end_marker} {flag}" if flag else self.end_marker
        lines = [self.start_marker + newline]
        lines.extend(line + newline for line in body)
        lines.append(end + final)
        return lines

    def install(self, path, rendered):
        """
        Install or update the managed block in a file.

        A new block records on its end marker whether install created the file
        or terminated the file's last line, so uninstall can undo exactly that.

        Args:
            path: Target file, already expanded
            rendered: Rendered block text (without markers)

        Returns:
            bool: True if the file was written, False if it was already up to date

        Raises:
            CorruptedBlockError: If the file has unpaired markers (file untouched)
            OSError: If the file cannot be read or written
        """
        content = read_config_file(path)
        lines = split_lines(content) if content else []
        scan = scan_block(lines, self.start_marker, self.end_marker, path)
        newline = detect_newline(lines)

        if scan.block:
            # Keep the old end marker's flag and terminator
            end = scan.block[-1]
            flag = end_marker_flag(end, self.end_marker)
            new_lines = (
                scan.prefix + self._block_lines(rendered, newline, flag, line_ending(end)) + scan.suffix
            )
            logger.debug("updating existing block in %s", path)
        else:
            new_lines = list(lines)
            flag = None
            if content is None:
                flag = FLAG_CREATED
            elif new_lines and not line_ending(new_lines[-1]):
                new_lines[-1] += newline
                flag = FLAG_NEWLINE_ADDED
            new_lines += self._block_lines(rendered, newline, flag, newline)
            logger.debug("appending new block to %s", path)

        new_content = "".join(new_lines)
        if new_content == content:
            logger.debug("%s is already up to date", path)
            return False

        write_config_file(path, new_content)
        return True

    def uninstall(self, path):
        """
        Remove the managed block from a file.

        A missing file or a file without a block is left alone. A file that
        install created is deleted once nothing else is left in it.

        Returns:
            bool: True if the file was changed or deleted

        Raises:
            CorruptedBlockError: If the file has unpaired markers (file untouched)
            OSError: If the file cannot be read, written or deleted
        """
        content = read_config_file(path)
        if not content:
            logger.debug("%s is missing or empty, nothing to remove", path)
            return False

        scan = scan_block(split_lines(content), self.start_marker, self.end_marker, path)
        if not scan.block:
            logger.debug("no managed block in %s", path)
            return False

        flag = end_marker_flag(scan.block[-1], self.end_marker)
        prefix = list(scan.prefix)
        if flag == FLAG_NEWLINE_ADDED and prefix and not scan.suffix:
            last = prefix[-1]
            prefix[-1] = last[: len(last) - len(line_ending(last))]

        new_content = "".join(prefix + scan.suffix)
        if not new_content and flag == FLAG_CREATED:
            logger.debug("removing %s, install created it", path)
            os.remove(path)
        else:
            write_config_file(path, new_content)
        return True


def get_fish_script():
    """Get the path of our fish completion script."""
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return os.path.join(base, "fish", "completions", "sso-helper.fish")


def default_shell_scripts():
    """
    Build the table of supported shells and the files we edit by default.

    Returns:
        Read-only mapping of shell name to ShellScript(template, path)
    """
    return MappingProxyType(
        {
            "bash": ShellScript("bash_profile.sh", os.path.expanduser("~/.bash_profile")),
            "zsh": ShellScript("zshrc.sh", os.path.expanduser("~/.zshrc")),
            "fish": ShellScript("sso-helper.fish", get_fish_script()),
        }
    )


def load_template(name):
    """Read a bundled shell template by name."""
    return (resources.files("ssohelper") / "templates" / name).read_text(encoding="utf-8")


def detect_shell():
    """
    Return the name of the user's shell.

    Uses $SHELL, falling back to the login shell from the password database.

    Raises:
        UnsupportedShellError: If no shell can be determined
    """
    shell_path = os.environ.get("SHELL")
    if not shell_path:
        try:
            shell_path = pwd.getpwuid(os.getuid()).pw_shell
        except KeyError:
            shell_path = ""

    shell = os.path.basename(shell_path)
    if not shell:
        raise UnsupportedShellError("<unknown>")
    logger.debug("detected configured shell as: %s", shell)
    return shell


def get_executable():
    """
    Return the absolute path of the sso-helper program.

    Uses the running script when started as sso-helper, otherwise (e.g. under
    python -m) the sso-helper found on $PATH.
    """
    argv0 = os.path.realpath(sys.argv[0])
    if os.path.basename(sys.argv[0]) == PROGRAM_NAME:
        return argv0
    return shutil.which(PROGRAM_NAME) or argv0


class ShellHelper:
    """
    Installs, removes or prints the sso-helper script for a shell.

    Args:
        scripts: Shell registry, defaults to default_shell_scripts()
        editor: ConfigBlockEditor to use
        get_executable: Callable returning the path bound to {{ Executable }}
        template_loader: Callable mapping a template name to its text
    """

    def __init__(self, scripts=None, editor=None, get_executable=get_executable, template_loader=load_template):
        self.scripts = scripts if scripts is not None else default_shell_scripts()
        self.editor = editor or ConfigBlockEditor()
        self.get_executable = get_executable
        self.template_loader = template_loader

    def get_script(self, shell):
        """
        Look up the template text and default path for a shell.

        Args:
            shell: Shell name, or empty to detect it

        Returns:
            tuple: (shell, template text, default path)
        """
        if not shell:
            shell = detect_shell()
        logger.debug("using %s as our shell", shell)

        script = self.scripts.get(shell)
        if script is None:
            raise UnsupportedShellError(shell)

        return shell, self.template_loader(script.template), script.path

    def _bindings(self):
        return {"Executable": self.get_executable()}

    def generate(self, shell, output):
        """Print the script for immediate sourcing in the active shell."""
        shell, template, _ = self.get_script(shell)
        self.editor.write_to(template, self._bindings(), output, name=shell)

    def install(self, shell, path=None):
        """Install the script into the shell startup file (or the given path)."""
        shell, template, default_path = self.get_script(shell)
        rendered = self.editor.render(template, self._bindings(), name=shell)
        return self.editor.install(path or default_path, rendered)

    def uninstall(self, shell, path=None):
        """Remove the script from the shell startup file (or the given path)."""
        shell, _, default_path = self.get_script(shell)
        return self.editor.uninstall(path or default_path)

    def config_files(self):
        """List all the config files we might edit."""
        return [script.path for script in self.scripts.values()]
