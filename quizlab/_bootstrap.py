"""
Child-side bootstrap for sandboxed Python submissions.

This file is not imported by the package. The sandbox compiles its source
under BOOTSTRAP_FILENAME inside a fresh ``python -I -B -c`` interpreter,
which reads a JSON payload from stdin:

    {"code": ..., "input": ..., "max_steps": int or null}

The submission runs as a new ``__main__`` module with ``input`` as its
stdin. Failures are reported on the last stderr line as ``STATUS_MARKER``
followed by a JSON object with ``kind``, ``message`` and ``line``. A clean
exit writes no status line. The process always ends through ``os._exit``,
so nothing the submission registers (atexit handlers, finalizers) runs
after it.

The audit hook and the step tracer read nothing from module globals or
builtins at call time: every name they use is bound when they are built.
"""

import builtins
import io
import itertools
import json
import os
import sys
import types

STATUS_MARKER = "__quizlab_status__:"
FILENAME = "<submission>"
BOOTSTRAP_FILENAME = "<quizlab-bootstrap>"

# Audit events a submission may never trigger
DENIED_EVENTS = frozenset({
    "os.system", "os.exec", "os.posix_spawn", "os.spawn", "os.fork", "os.forkpty",
    "os.kill", "os.killpg", "os.remove", "os.rename", "os.rmdir", "os.mkdir",
    "os.chmod", "os.chown", "os.link", "os.symlink", "os.truncate", "os.utime",
    "os.chdir", "os.putenv", "os.unsetenv",
    "shutil.rmtree", "shutil.copyfile", "shutil.move", "shutil.make_archive",
    "sys.settrace", "sys.setprofile", "sys._current_frames", "sys.remote_exec",
    "gc.get_objects", "gc.get_referrers", "gc.get_referents",
    "_thread.start_new_thread", "_thread.start_joinable_thread", "code.__new__",
    "ctypes.dlopen", "ctypes.dlsym", "ctypes.cdata", "ctypes.call_function",
    "webbrowser.open", "urllib.Request",
})
DENIED_PREFIXES = ("subprocess.", "socket.", "winreg.", "_winapi.", "msvcrt.")
# Modules reaching the OS without raising their own audit events
DENIED_MODULES = frozenset({"_posixsubprocess", "ctypes", "_ctypes", "_winapi", "winreg", "msvcrt"})
# Filenames the step tracer does not count
UNTRACED_PREFIXES = ("<frozen", BOOTSTRAP_FILENAME)
# Attributes handing out frame objects
FRAME_ATTRIBUTES = frozenset({"tb_frame", "gi_frame", "cr_frame", "ag_frame"})
# Audit events allowed only for paths inside the interpreter installation
PATH_EVENTS = frozenset({"os.listdir", "os.scandir"})
WRITE_FLAGS = os.O_WRONLY | os.O_RDWR | os.O_APPEND | os.O_CREAT | os.O_TRUNC


class FrameAccessDenied(PermissionError, ValueError):
    """
    Raised for frame inspection. Also a ValueError, which is what
    collections.namedtuple and typing catch when looking up the caller's
    module name.
    """


def make_finisher(stdout, stderr, dumps, exit_now):
    """Build the only way out of the child: flush, optionally report, exit."""

    def finish(code, kind=None, message="", line=None,
               _errors=(Exception,), _marker=STATUS_MARKER):
        try:
            try:
                stdout.flush()
            except _errors as e:
                if kind is None:
                    code, kind = 1, "runtime_error"
                    message = f"{e.__class__.__name__}: {e}"
            if kind is not None:
                status = dumps({"kind": kind, "message": message, "line": line})
                stderr.write("\n" + _marker + status + "\n")
                stderr.flush()
        finally:
            exit_now(code)

    return finish


def describe(error, _errors=(BaseException,)):
    try:
        return f"{type(error).__name__}: {error}"
    except _errors:
        return "Error raised while formatting an exception"


def make_normalizer(cwd):
    """Absolute, trailing-separator form of a path, without touching the filesystem."""
    if os.name == "nt":
        abspath, join = os.path.abspath, os.path.join

        def normalize(path):
            return join(abspath(path), "").lower()

        return normalize

    sep = os.sep

    def normalize(path):
        if not path.startswith(sep):
            path = cwd + sep + path
        parts = []
        for part in path.split(sep):
            if part == "" or part == ".":
                continue
            if part == "..":
                if parts:
                    parts.pop()
                continue
            parts.append(part)
        return sep + sep.join(parts) + sep

    return normalize


def allowed_roots(normalize):
    """Directories holding the interpreter's own library."""
    candidates = {sys.prefix, sys.base_prefix, sys.exec_prefix, sys.base_exec_prefix,
                  os.path.dirname(os.__file__)}
    return tuple(normalize(os.path.abspath(r)) for r in candidates if r)


def make_guard(normalize, roots):
    """
    Build the audit hook and a ``locate`` function giving the line number of
    the deepest traceback entry inside the submission. ``locate`` is the only
    code that reads frames while the hook is switched off, and it accepts
    real traceback objects only.
    """
    armed = [True]
    denied_events = DENIED_EVENTS
    denied_prefixes = DENIED_PREFIXES
    denied_modules = DENIED_MODULES
    frame_attributes = FRAME_ATTRIBUTES
    path_events = PATH_EVENTS
    write_flags = WRITE_FLAGS
    type_of = type
    is_instance = isinstance
    denied = PermissionError
    frame_denied = FrameAccessDenied
    traceback_type = types.TracebackType
    function_type = types.FunctionType
    filename = FILENAME
    untraced = UNTRACED_PREFIXES

    def allowed(path):
        kind = type_of(path)
        if kind is bytes:
            path = path.decode("utf-8", "surrogateescape")
        elif kind is not str:
            return False
        return normalize(path).startswith(roots)

    def guard(event, args):
        if not armed[0]:
            return
        if event == "open":
            path, mode, flags = args[0], args[1], args[2]
            if type_of(path) is int:
                return
            if mode is not None:
                for c in "wax+":
                    if c in mode:
                        raise denied("Writing files is not allowed in the sandbox")
            elif flags & write_flags:
                raise denied("Writing files is not allowed in the sandbox")
            if not allowed(path):
                raise denied("Reading files outside the Python installation is not allowed in the sandbox")
            return
        if event in path_events:
            path = args[0] if args and args[0] is not None else "."
            if not allowed(path):
                raise denied("Listing directories outside the Python installation is not allowed in the sandbox")
            return
        if event == "object.__getattr__":
            if args[1] in frame_attributes:
                raise frame_denied("Inspecting stack frames is not allowed in the sandbox")
            return
        if event == "sys._getframe":
            raise frame_denied("Inspecting stack frames is not allowed in the sandbox")
        if event == "object.__setattr__" or event == "object.__delattr__":
            target = args[0]
            if is_instance(target, type_of):
                return
            if (type_of(target) is function_type and args[1] != "__code__"
                    and not target.__code__.co_filename.startswith(untraced)):
                return
            raise denied(f"Changing '{args[1]}' is not allowed in the sandbox")
        if event == "compile":
            name = args[1]
            if type_of(name) is not str or name.startswith(untraced):
                raise denied("Compiling under this filename is not allowed in the sandbox")
            return
        if event == "import":
            if args[0] in denied_modules:
                raise denied(f"Importing '{args[0]}' is not allowed in the sandbox")
            return
        if event in denied_events or event.startswith(denied_prefixes):
            raise denied(f"Operation '{event}' is not allowed in the sandbox")

    def locate(tb):
        if type_of(tb) is not traceback_type:
            return None
        line = None
        armed[0] = False
        try:
            while tb is not None:
                if tb.tb_frame.f_code.co_filename == filename:
                    line = tb.tb_lineno
                tb = tb.tb_next
        finally:
            armed[0] = True
        return line

    return guard, locate


def make_tracer(max_steps, exhausted):
    """
    Count executed lines of submission code, including code it builds with
    exec/eval/compile. When the count would exceed max_steps the line is not
    executed: the child reports a timeout and exits on the spot.
    """

    def local(frame, event, arg, _tick=itertools.count(1).__next__,
              _limit=max_steps, _exhausted=exhausted):
        if event == "line" and _tick() > _limit:
            _exhausted(1, "timeout", "Step budget exhausted")
        return local

    def tracer(frame, event, arg, _local=local, _submission=FILENAME,
               _skipped=UNTRACED_PREFIXES):
        name = frame.f_code.co_filename
        if name == _submission or (name.startswith("<") and not name.startswith(_skipped)):
            return _local
        return None

    return tracer


def main():
    payload = json.loads(sys.stdin.read())
    sys.stdin = io.StringIO(payload["input"])
    try:
        sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    except (AttributeError, ValueError):
        pass
    finish = make_finisher(sys.stdout, sys.stderr, json.dumps, os._exit)

    try:
        code = compile(payload["code"], FILENAME, "exec")
    except SyntaxError as e:
        finish(1, "runtime_error", f"{type(e).__name__}: {e.msg}", e.lineno)
    except (ValueError, MemoryError) as e:
        finish(1, "runtime_error", f"{type(e).__name__}: {e}")

    module = types.ModuleType("__main__")
    module.__dict__["__builtins__"] = builtins
    sys.modules["__main__"] = module

    normalize = make_normalizer(os.getcwd())
    guard, locate = make_guard(normalize, allowed_roots(normalize))
    if payload.get("max_steps"):
        sys.settrace(make_tracer(payload["max_steps"], finish))
    sys.addaudithook(guard)
    del guard

    try:
        exec(code, module.__dict__)
    except MemoryError:
        finish(1, "memory_exceeded", "MemoryError")
    except SystemExit as e:
        if e.code is None or e.code == 0:
            finish(0)
        finish(1, "runtime_error", f"Program exited with status {e.code}")
    except BaseException as e:
        finish(1, "runtime_error", describe(e), locate(e.__traceback__))
    finish(0)


if __name__ == "__main__":
    main()
