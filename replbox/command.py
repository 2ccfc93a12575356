"""Turn submitted source code into one shell command line.

The command writes the code into a file inside the sandbox and runs it with
the language's interpreter::

    [touch <target>;] /bin/echo '<code>' > <target>; <interpreter> <target>;

The echo utility is called by path because the builtin of some shells
(dash) expands backslash escapes such as ``\\n`` inside the code.

The first line of the code may name the target file with a directive such as
``file-main.py`` (optionally written as a ``#`` or ``//`` comment). Without
one, the target is ``file.<ext>``.
"""

import re
from dataclasses import dataclass
from typing import Optional

from replbox.models import DEFAULT_FILENAME, LanguageSpec, resolve_language

# 'text' -> "text", one line at a time
_SINGLE_QUOTED = re.compile(r"'(.*?)'")
_DIRECTIVE = re.compile(r"^(?:#|//)?\s*file-([A-Za-z0-9_.-]+)\s*$")


@dataclass(frozen=True)
class CommandSpec:
    """The pieces of a synthesized command."""

    target_filename: str
    write_command: str
    run_command: str
    touch_command: Optional[str] = None

    @property
    def command(self) -> str:
        parts = [self.write_command, self.run_command]
        if self.touch_command:
            parts.insert(0, self.touch_command)
        return " ".join(parts)


def normalize_quotes(code: str) -> str:
    """Rewrite single-quoted substrings as double-quoted ones."""
    return _SINGLE_QUOTED.sub(r'"\1"', code)


def quote_for_echo(code: str) -> str:
    """Wrap ``code`` in single quotes for sh, escaping any it still contains."""
    return "'" + code.replace("'", "'\"'\"'") + "'"


def split_directive(code: str) -> tuple[Optional[str], str]:
    """Return (directive filename, remaining body) for ``code``."""
    first, _, rest = code.partition("\n")
    match = _DIRECTIVE.match(first.strip())
    if not match:
        return None, code
    return match.group(1), rest.strip()


def target_for(name: str, language: LanguageSpec) -> str:
    suffix = f".{language.file_extension}"
    if name.endswith(suffix):
        return name
    return name + suffix


def build_command_spec(code: str, language: str) -> CommandSpec:
    """Build the command pieces for running ``code`` as ``language``.

    Raises:
        UnsupportedLanguage: if ``language`` is not in the registry.
    """
    spec = resolve_language(language)

    body = normalize_quotes(code.strip())
    directive, body = split_directive(body)

    target = target_for(directive or DEFAULT_FILENAME, spec)
    touch_command = f"touch {target};" if directive else None

    return CommandSpec(
        target_filename=target,
        write_command=f"/bin/echo {quote_for_echo(body)} > {target};",
        run_command=f"{spec.interpreter} {target};",
        touch_command=touch_command,
    )


def synthesize_command(code: str, language: str) -> str:
    """Return the single shell command line that writes and runs ``code``."""
    return build_command_spec(code, language).command
