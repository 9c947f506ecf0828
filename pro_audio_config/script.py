# pro_audio_config/script.py
#
# Turns a desired AudioSettings into the command sequence the active backend
# understands, and renders that sequence as one POSIX sh script.
#
# Everything in here is pure: no subprocesses, no filesystem access. The
# backend-specific verbs live on the backend objects (backends.py); this module
# owns the shared types, the bit-depth -> sample-format table, dispatch on
# BackendKind, and the script rendering.
#
# Why a single script:
# - The elevation gate (pkexec) must be crossed exactly once per apply, so the
#   whole sequence runs inside one `sh -c` behind it.
# - `set -e` makes the script's exit status the first failing command's
#   status, which is what ExecutionFailedError reports.
import shlex

from .compat import FORMAT_FALLBACK, SAMPLE_FORMATS

HEREDOC_TAG = "PRO_AUDIO_CONFIG_EOF"


class Command:
    """
    One step of a CommandSequence.

    argv:        the program and its arguments, never a shell string
    description: short human label for logs and `script` output
    input:       text fed to stdin (drop-in config files go through `tee`)
    as_user:     run inside the invoking user's audio session instead of as root
    """
    __slots__ = ("argv", "description", "input", "as_user")

    def __init__(self, argv, description="", input=None, as_user=False):
        self.argv = [str(a) for a in argv]
        self.description = description
        self.input = input
        self.as_user = as_user

    def __eq__(self, other):
        if not isinstance(other, Command):
            return NotImplemented
        return (self.argv, self.input, self.as_user) == (other.argv, other.input, other.as_user)

    def __repr__(self):
        extra = ", as_user=True" if self.as_user else ""
        return f"Command({self.argv!r}{extra})"


class CommandSequence:
    __slots__ = ("backend", "commands")

    def __init__(self, backend=None, commands=None):
        self.backend = backend
        self.commands = list(commands or [])

    def __iter__(self):
        return iter(self.commands)

    def __len__(self):
        return len(self.commands)

    def __bool__(self):
        return bool(self.commands)

    def __repr__(self):
        name = self.backend.value if self.backend else None
        return f"CommandSequence(backend={name!r}, commands={self.commands!r})"

    def programs(self):
        return [c.argv[0] for c in self.commands]


def format_for_bit_depth(bit_depth):
    """16 -> S16LE, 24 -> S24LE, 32 -> S32LE, anything else -> S24LE."""
    return SAMPLE_FORMATS.get(bit_depth, FORMAT_FALLBACK)


def generate(target, backend, restart_services=False):
    """
    Map `target` to the native command sequence of `backend` (a BackendKind).

    Never fails: an unknown or missing backend yields an empty sequence and
    the executor reports that nothing could be run.
    """
    from .backends import get_backend

    impl = get_backend(backend) if backend is not None else None
    if impl is None:
        return CommandSequence(backend, [])
    return CommandSequence(backend, impl.build_commands(target, restart_services=restart_services))


def _session_prefix(session):
    user, uid = session
    runtime = f"/run/user/{uid}"
    return [
        "runuser", "-u", user, "--",
        "env",
        f"XDG_RUNTIME_DIR={runtime}",
        f"DBUS_SESSION_BUS_ADDRESS=unix:path={runtime}/bus",
    ]


def command_argv(command, session=None):
    if command.as_user and session:
        return _session_prefix(session) + command.argv
    return list(command.argv)


def render_script(sequence, session=None):
    """
    Render a CommandSequence as a POSIX sh script.

    session: (user_name, uid) whose audio session receives `as_user`
    commands. With no session those commands run in the script's own context.
    """
    name = sequence.backend.value if sequence.backend else "none"
    lines = [
        "#!/bin/sh",
        f"# pro-audio-config: {len(sequence)} step(s) for backend '{name}'",
        "set -e",
    ]
    for cmd in sequence:
        if cmd.description:
            lines.append(f"# {cmd.description}")
        line = shlex.join(command_argv(cmd, session))
        if cmd.input is None:
            lines.append(line)
            continue
        if HEREDOC_TAG in cmd.input:
            # Never expected for generated content; refuse rather than emit a
            # script whose heredoc terminates early.
            raise ValueError("command input contains the heredoc terminator")
        body = cmd.input if cmd.input.endswith("\n") else cmd.input + "\n"
        # tee echoes stdin; keep the privileged log quiet.
        lines.append(f"{line} >/dev/null <<'{HEREDOC_TAG}'")
        lines.append(body + HEREDOC_TAG)
    return "\n".join(lines) + "\n"


def required_commands(sequence, session=None):
    """Binaries the rendered script needs, in first-use order."""
    seen = []
    for cmd in sequence:
        for prog in (command_argv(cmd, session)[0], cmd.argv[0]):
            if prog not in seen:
                seen.append(prog)
    return seen
