# pro_audio_config/cmdline_fmt.py
#
# Small utility for formatting argv lists into a human-friendly command string.
#
# IMPORTANT:
# - This is for display/logging only.
# - Do NOT use this to build what gets executed. The privileged script is
#   rendered by script.render_script(), which quotes every word itself.
#
import shlex

CLI_PROG = "pro-audio-config"


def format_cmd_for_display(argv) -> str:
    """
    Format an argv list into a POSIX shell command string suitable for
    display/logging.

    None values render as empty arguments rather than the text "None".
    """
    if argv is None:
        return ""
    args = ["" if a is None else str(a) for a in argv]
    return shlex.join(args)


def format_command_for_display(command) -> str:
    """
    Format a script.Command for the log, marking stdin payloads and
    commands that run inside the user's session.
    """
    text = format_cmd_for_display(command.argv)
    if command.input is not None:
        text += f" <<< ({len(command.input.splitlines())} lines)"
    if command.as_user:
        text = "[user] " + text
    return text


def format_apply_cmd_for_display(settings) -> str:
    """
    The `pro-audio-config apply ...` line that would re-apply `settings`,
    for users who want to copy the detected state into a script.
    """
    return CLI_PROG + " " + format_cmd_for_display([
        "apply",
        "--rate", settings.sample_rate,
        "--bits", settings.bit_depth,
        "--buffer", settings.buffer_size,
        "--device", settings.device_id,
    ])
