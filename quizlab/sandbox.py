"""
Secure sandbox for executing learner code with resource limits.

Every run happens in a fresh child process with an empty working directory.
Unix: Uses the resource module for CPU time, address space and output size
limits, and kills the child's whole process group at the wall-clock timeout.
Windows: Uses the wall-clock timeout only.

Outcomes are always returned as ExecutionResult values; nothing the submitted
program does can raise into the caller.
"""

import json
import logging
import math
import os
import platform
import re
import shutil
import signal
import subprocess
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from .errors import InvalidDefinition, SandboxConfigError
from .models import (
    ExecutionError,
    ExecutionResult,
    Language,
    MemoryExceeded,
    RuntimeFault,
    Success,
    Timeout,
)

logger = logging.getLogger(__name__)

IS_WINDOWS = platform.system() == "Windows"
BOOTSTRAP_SOURCE = (Path(__file__).parent / "_bootstrap.py").read_text(encoding="utf-8")
BOOTSTRAP_FILENAME = "<quizlab-bootstrap>"
# Compiled under its own filename so the step tracer can tell it from submission code
BOOTSTRAP_COMMAND = f"exec(compile({BOOTSTRAP_SOURCE!r}, {BOOTSTRAP_FILENAME!r}, 'exec'))"
STATUS_MARKER = "__quizlab_status__:"
STDERR_SLACK_BYTES = 64 * 1024

# Signals delivered when the CPU limit runs out
CPU_LIMIT_SIGNALS = {getattr(signal, name) for name in ("SIGXCPU", "SIGKILL") if hasattr(signal, name)}


def get_python_executable():
    """Get the appropriate Python executable path."""
    if getattr(sys, 'frozen', False):
        python_path = shutil.which('python')
        if not python_path:
            python_path = shutil.which('python3')

        if python_path:
            return python_path, ['-I', '-B']
        else:
            raise RuntimeError("Python executable not found. Please ensure Python is installed.")
    else:
        return sys.executable, ['-I', '-B']


PYTHON_EXE, ISOLATION_FLAGS = get_python_executable()


@dataclass
class SandboxConfig:
    """
    Resource envelope for one sandbox.

    Attributes:
        memory_limit_bytes: Address-space ceiling for the child process
        timeout_ms: Wall-clock ceiling for one run; per-test timeouts may only lower it
        max_output_bytes: Largest stdout accepted from the program
        max_steps: Optional deterministic budget of executed source lines (Python only)
        compile_timeout_ms: Wall-clock ceiling for compiling languages that need it
    """
    memory_limit_bytes: int = 64 * 1024 * 1024
    timeout_ms: int = 5000
    max_output_bytes: int = 1024 * 1024
    max_steps: Optional[int] = None
    compile_timeout_ms: int = 30000

    @staticmethod
    def from_dict(data: dict) -> 'SandboxConfig':
        """Create SandboxConfig from dictionary."""
        defaults = SandboxConfig.default()
        return SandboxConfig(
            memory_limit_bytes=data.get('memory_limit_bytes', defaults.memory_limit_bytes),
            timeout_ms=data.get('timeout_ms', defaults.timeout_ms),
            max_output_bytes=data.get('max_output_bytes', defaults.max_output_bytes),
            max_steps=data.get('max_steps'),
            compile_timeout_ms=data.get('compile_timeout_ms', defaults.compile_timeout_ms),
        )

    def to_dict(self) -> dict:
        return {
            "memory_limit_bytes": self.memory_limit_bytes,
            "timeout_ms": self.timeout_ms,
            "max_output_bytes": self.max_output_bytes,
            "max_steps": self.max_steps,
            "compile_timeout_ms": self.compile_timeout_ms,
        }

    def validate(self) -> Tuple[bool, str]:
        """
        Validate the limits.

        Returns:
            Tuple of (is_valid, error_message)
        """
        for name in ("memory_limit_bytes", "timeout_ms", "max_output_bytes", "compile_timeout_ms"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                return False, f"{name} must be a positive integer, got {value!r}"
        if self.memory_limit_bytes < 16 * 1024 * 1024:
            return False, "memory_limit_bytes must be at least 16 MiB to start an interpreter"
        if self.max_steps is not None and (not isinstance(self.max_steps, int) or self.max_steps <= 0):
            return False, f"max_steps must be a positive integer or null, got {self.max_steps!r}"
        return True, ""

    @staticmethod
    def default() -> 'SandboxConfig':
        return SandboxConfig()


@dataclass
class ProcessOutcome:
    """Raw result of one child process run."""
    returncode: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool
    duration_ms: int


def _read_capped(handle, limit: int) -> str:
    handle.seek(0)
    return handle.read(limit).decode('utf-8', errors='replace')


def _kill(proc: subprocess.Popen) -> None:
    if IS_WINDOWS:
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _parse_status(stderr: str) -> Optional[dict]:
    """Return the bootstrap's status record from the last marker line, if any."""
    for line in reversed(stderr.splitlines()):
        if line.startswith(STATUS_MARKER):
            try:
                return json.loads(line[len(STATUS_MARKER):])
            except json.JSONDecodeError:
                return None
    return None


def _strip_status(stderr: str) -> str:
    return "\n".join(line for line in stderr.splitlines() if not line.startswith(STATUS_MARKER)).strip()


def _last_error_line(stderr: str) -> str:
    for line in reversed(stderr.strip().splitlines()):
        if line.strip():
            return line.strip()
    return ""


class Sandbox:
    """
    Runs one untrusted submission under a fixed resource envelope.

    Sandboxes share no mutable state; separate instances (or separate calls on
    one instance) may run concurrently.
    """

    def __init__(self, config: Optional[SandboxConfig] = None):
        self.config = config or SandboxConfig.default()
        is_valid, error_message = self.config.validate()
        if not is_valid:
            raise SandboxConfigError(f"Invalid sandbox configuration: {error_message}")

        self._executors: Dict[Language, Callable[[str, str, float], ExecutionResult]] = {
            Language.PYTHON: self._execute_python,
            Language.JAVASCRIPT: self._execute_javascript,
            Language.RUST: self._execute_rust,
        }
        if IS_WINDOWS:
            logger.warning("CPU and memory limits are not enforced on Windows; "
                           "only the wall-clock timeout applies")

    def supports(self, language) -> bool:
        try:
            return Language.coerce(language) in self._executors
        except InvalidDefinition:
            return False

    def execute(
        self,
        code: str,
        language,
        input_str: str = "",
        timeout_ms: Optional[int] = None
    ) -> ExecutionResult:
        """
        Run a submission and classify the outcome.

        Args:
            code: Source text of the submission
            language: Language (or its name) the source is written in
            input_str: Text fed to the program's standard input
            timeout_ms: Optional tighter timeout for this run

        Returns:
            Exactly one of Success, RuntimeFault, Timeout, MemoryExceeded,
            ExecutionError
        """
        try:
            language = Language.coerce(language)
        except InvalidDefinition:
            return ExecutionError(f"Unsupported language: {language!r}")

        executor = self._executors.get(language)
        if executor is None:
            return ExecutionError(f"Language {language.display_name} is not supported in the sandbox")
        if not code or not code.strip():
            return ExecutionError("Empty code")

        effective_ms = self.config.timeout_ms
        if timeout_ms is not None and 0 < timeout_ms < effective_ms:
            effective_ms = timeout_ms

        try:
            result = executor(code, input_str or "", effective_ms / 1000.0)
        except Exception as e:
            logger.exception("Sandbox failed while running a %s submission", language.display_name)
            return ExecutionError(f"Sandbox failure: {e}")

        logger.debug("%s submission finished: %s", language.display_name, result.kind)
        return result

    # ===== PROCESS MANAGEMENT =====

    def _limits(self, timeout_sec: float, limit_memory: bool = True):
        """Build the preexec hook applying rlimits in the child (None on Windows)."""
        if IS_WINDOWS:
            return None

        cpu_seconds = int(math.ceil(timeout_sec)) + 1
        memory_bytes = self.config.memory_limit_bytes if limit_memory else None
        file_bytes = self.config.max_output_bytes + STDERR_SLACK_BYTES

        def set_limits():
            import resource

            wanted = [
                (resource.RLIMIT_CPU, cpu_seconds),
                (resource.RLIMIT_FSIZE, file_bytes),
                (resource.RLIMIT_CORE, 0),
            ]
            if memory_bytes is not None:
                wanted.append((resource.RLIMIT_AS, memory_bytes))
            for limit, value in wanted:
                _, hard = resource.getrlimit(limit)
                if hard != resource.RLIM_INFINITY:
                    value = min(value, hard)
                resource.setrlimit(limit, (value, value))

        return set_limits

    def _run_process(self, command, stdin_bytes: bytes, timeout_sec: float,
                     cwd: str, preexec) -> ProcessOutcome:
        env = {
            "PATH": os.environ.get("PATH", os.defpath),
            "LANG": "C.UTF-8",
            "LC_ALL": "C.UTF-8",
        }
        if IS_WINDOWS:
            env["SYSTEMROOT"] = os.environ.get("SYSTEMROOT", "")

        with tempfile.TemporaryFile() as out_file, tempfile.TemporaryFile() as err_file:
            start_time = time.perf_counter()
            proc = subprocess.Popen(
                command,
                stdin=subprocess.PIPE,
                stdout=out_file,
                stderr=err_file,
                cwd=cwd,
                env=env,
                preexec_fn=preexec,
                start_new_session=not IS_WINDOWS,
            )
            timed_out = False
            try:
                proc.communicate(input=stdin_bytes, timeout=timeout_sec)
            except subprocess.TimeoutExpired:
                timed_out = True
                _kill(proc)
                proc.communicate()
            duration_ms = int((time.perf_counter() - start_time) * 1000)

            return ProcessOutcome(
                returncode=proc.returncode,
                stdout=_read_capped(out_file, self.config.max_output_bytes),
                stderr=_read_capped(err_file, self.config.max_output_bytes + STDERR_SLACK_BYTES),
                timed_out=timed_out,
                duration_ms=duration_ms,
            )

    def _classify_exit(self, outcome: ProcessOutcome, message: str,
                       line: Optional[int] = None) -> ExecutionResult:
        """Shared classification once language-specific markers were checked."""
        if outcome.timed_out:
            return Timeout(partial_output=outcome.stdout)
        if outcome.returncode == 0:
            return Success(output=outcome.stdout, duration_ms=outcome.duration_ms)
        if outcome.returncode is not None and outcome.returncode < 0:
            signum = -outcome.returncode
            if signum in CPU_LIMIT_SIGNALS:
                return Timeout(partial_output=outcome.stdout)
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            return RuntimeFault(f"Program terminated by signal {name}", line)
        if "File too large" in outcome.stderr:
            return RuntimeFault(f"Output limit exceeded ({self.config.max_output_bytes} bytes)", line)
        return RuntimeFault(message or f"Program exited with status {outcome.returncode}", line)

    # ===== PYTHON =====

    def _execute_python(self, code: str, input_str: str, timeout_sec: float) -> ExecutionResult:
        payload = json.dumps({
            "code": code,
            "input": input_str,
            "max_steps": self.config.max_steps,
        }).encode('utf-8')
        command = [PYTHON_EXE, *ISOLATION_FLAGS, "-c", BOOTSTRAP_COMMAND]

        with tempfile.TemporaryDirectory(prefix="quizlab-") as work_dir:
            outcome = self._run_process(command, payload, timeout_sec, work_dir,
                                        self._limits(timeout_sec))

        if outcome.timed_out:
            return Timeout(partial_output=outcome.stdout)

        status = _parse_status(outcome.stderr)
        if status is not None:
            kind = status.get("kind")
            message = status.get("message") or ""
            if kind == "timeout":
                return Timeout(partial_output=outcome.stdout)
            if kind == "memory_exceeded":
                return MemoryExceeded(limit_bytes=self.config.memory_limit_bytes)
            if "File too large" in message:
                return RuntimeFault(f"Output limit exceeded ({self.config.max_output_bytes} bytes)",
                                    status.get("line"))
            return RuntimeFault(message or "Runtime error", status.get("line"))

        if outcome.returncode != 0 and "MemoryError" in outcome.stderr:
            return MemoryExceeded(limit_bytes=self.config.memory_limit_bytes)
        return self._classify_exit(outcome, _last_error_line(_strip_status(outcome.stderr)))

    # ===== JAVASCRIPT =====

    def _execute_javascript(self, code: str, input_str: str, timeout_sec: float) -> ExecutionResult:
        node = shutil.which("node")
        if not node:
            return ExecutionError("JavaScript runtime 'node' is not available on this host")

        heap_mb = max(self.config.memory_limit_bytes // (1024 * 1024), 16)
        with tempfile.TemporaryDirectory(prefix="quizlab-") as work_dir:
            script = Path(work_dir) / "main.js"
            script.write_text(code, encoding='utf-8')
            command = [node, f"--max-old-space-size={heap_mb}", str(script)]
            # heap cap stands in for RLIMIT_AS under V8
            outcome = self._run_process(command, input_str.encode('utf-8'), timeout_sec, work_dir,
                                        self._limits(timeout_sec, limit_memory=False))

        if not outcome.timed_out and outcome.returncode != 0 and "heap out of memory" in outcome.stderr:
            return MemoryExceeded(limit_bytes=self.config.memory_limit_bytes)

        message, line = "", None
        error_line = re.search(r"^\s*(\w*Error\b.*)$", outcome.stderr, re.MULTILINE)
        if error_line:
            message = error_line.group(1).strip()
        location = re.search(r"main\.js:(\d+)", outcome.stderr)
        if location:
            line = int(location.group(1))
        return self._classify_exit(outcome, message or _last_error_line(outcome.stderr), line)

    # ===== RUST =====

    def _execute_rust(self, code: str, input_str: str, timeout_sec: float) -> ExecutionResult:
        rustc = shutil.which("rustc")
        if not rustc:
            return ExecutionError("Rust toolchain 'rustc' is not available on this host")

        with tempfile.TemporaryDirectory(prefix="quizlab-") as work_dir:
            source = Path(work_dir) / "main.rs"
            binary = Path(work_dir) / ("main.exe" if IS_WINDOWS else "main")
            source.write_text(code, encoding='utf-8')

            compiled = self._run_process(
                [rustc, "--edition", "2021", "-o", str(binary), str(source)],
                b"", self.config.compile_timeout_ms / 1000.0, work_dir, None,
            )
            if compiled.timed_out:
                return ExecutionError("Compilation timed out")
            if compiled.returncode != 0:
                return _rust_compile_error(compiled.stderr)

            outcome = self._run_process([str(binary)], input_str.encode('utf-8'), timeout_sec,
                                        work_dir, self._limits(timeout_sec))

        if not outcome.timed_out and "memory allocation of" in outcome.stderr:
            return MemoryExceeded(limit_bytes=self.config.memory_limit_bytes)
        message, line = _rust_panic(outcome.stderr)
        return self._classify_exit(outcome, message, line)


def _rust_compile_error(stderr: str) -> RuntimeFault:
    """First compiler diagnostic block, with the line it points at."""
    blocks = re.split(r"\n\s*\n", stderr.strip())
    first = next((b for b in blocks if b.lstrip().startswith("error")), stderr.strip())
    location = re.search(r"-->\s*.*?main\.rs:(\d+):\d+", first)
    line = int(location.group(1)) if location else None
    return RuntimeFault(first.strip() or "Compilation failed", line)


def _rust_panic(stderr: str) -> Tuple[str, Optional[int]]:
    """Extract the panic message and line from a Rust panic report."""
    line = None
    location = re.search(r"main\.rs:(\d+):\d+", stderr)
    if location:
        line = int(location.group(1))

    old_style = re.search(r"panicked at '(.*)', ", stderr)
    if old_style:
        return old_style.group(1), line
    new_style = re.search(r"panicked at [^\n]*:\n(.+)", stderr)
    if new_style:
        return new_style.group(1).strip(), line
    return _last_error_line(stderr), line
