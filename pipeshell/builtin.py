import os

from pipeshell.errors import HistoryFileError


def builtin_help(args, io, session):
    """Print help message"""
    io.write("""pipeshell help:
 Built-in commands:
  cd [dir]          : change directory
  echo [args...]    : print arguments
  exit [n]          : exit shell with status n
  help              : print this help
  history [n]       : show command history (last n entries)
  history -r|-w|-a f: read, write or append history file f
  pwd               : print working directory
  type name         : tell how a name would be run

Features:
  Quoting with '...', "..." and backslash escapes
  Pipes using |
  Redirection using > >> 1> 1>> 2> 2>>
  Tab completion of command names, Up/Down history
""")
    return 0


def builtin_echo(args, io, session):
    io.write(" ".join(args) + "\n")
    return 0


def builtin_exit(args, io, session):
    """Stop the read loop"""
    code = 0
    if args:
        try:
            code = int(args[0])
        except ValueError:
            code = 0
    session.stop(code)
    return code


def builtin_pwd(args, io, session):
    io.write(session.cwd + "\n")
    return 0


def builtin_cd(args, io, session):
    """Change directory"""
    target = args[0] if args else "~"
    path = session.resolve(target)
    if not os.path.isdir(path):
        io.error(f"cd: {target}: No such file or directory\n")
        return 1
    session.cwd = os.path.realpath(path)
    session.env["PWD"] = session.cwd
    return 0


def builtin_type(args, io, session):
    """Tell whether a name is a builtin or where it lives on PATH"""
    if not args:
        io.error("type: missing argument\n")
        return 1
    status = 0
    for name in args:
        if is_builtin(name):
            io.write(f"{name} is a shell builtin\n")
            continue
        path = session.which(name)
        if path:
            io.write(f"{name} is {path}\n")
        else:
            io.error(f"{name}: not found\n")
            status = 1
    return status


def builtin_history(args, io, session):
    """Show or persist command history"""
    history = session.history
    if args and args[0] in ("-r", "-w", "-a"):
        flag = args[0]
        if len(args) < 2:
            io.error(f"history: {flag}: option requires an argument\n")
            return 2
        path = session.resolve(args[1])
        try:
            if flag == "-r":
                history.load(path)
            elif flag == "-w":
                history.save(path)
            else:
                history.append_to(path)
        except HistoryFileError as e:
            io.error(f"history: {args[1]}: {e.reason}\n")
            return e.status
        return 0

    count = None
    if args:
        try:
            count = int(args[0])
        except ValueError:
            io.error(f"history: {args[0]}: numeric argument required\n")
            return 2
    io.write(history.format(count))
    return 0


BUILTINS = {
    'cd': builtin_cd,
    'echo': builtin_echo,
    'exit': builtin_exit,
    'help': builtin_help,
    'history': builtin_history,
    'pwd': builtin_pwd,
    'type': builtin_type,
}


def is_builtin(name):
    return name in BUILTINS
