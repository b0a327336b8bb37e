"""Run generated extraction code in an isolated, time-bounded subprocess.

Generated code must define ``extract(url, hints)`` returning either a list
of session dicts or a dict with ``sessions`` and optional ``organization``,
``expectedEmpty`` and ``note``. It runs in a fresh interpreter so a crash,
hang or stray global in one blob never reaches the worker process.
"""

import asyncio
import json
import logging
import sys
from typing import Any

from campscout.extraction.base import ExtractionLogic, build_result
from campscout.schemas.extraction import ExtractionResult

logger = logging.getLogger(__name__)

RESULT_MARKER = "__CAMPSCOUT_RESULT__"

# Executed with `python -I -c`; anything the generated code prints goes to stderr
HARNESS = f"""
import json, sys
payload = json.loads(sys.stdin.read())
out = sys.stdout
sys.stdout = sys.stderr
namespace = {{"__name__": "generated_extraction"}}
exec(compile(payload["code"], "<generated_extraction>", "exec"), namespace)
extract = namespace.get("extract")
if not callable(extract):
    raise SystemExit("generated code does not define extract(url, hints)")
result = extract(payload["url"], payload.get("hints") or {{}})
out.write("{RESULT_MARKER}\\n")
out.write(json.dumps(result, default=str))
out.flush()
"""

STDERR_TAIL = 1500


class SandboxedCodeLogic(ExtractionLogic):
    """Extraction logic backed by a stored code blob."""

    name = "generated"

    def __init__(self, code: str, timeout: float = 60, requires_browser: bool = False):
        self.code = code
        self.timeout = timeout
        self.requires_browser = requires_browser

    async def extract(self, url: str, hints: dict[str, Any]) -> ExtractionResult:
        stdin = json.dumps({"code": self.code, "url": url, "hints": hints or {}}).encode()
        proc = await asyncio.create_subprocess_exec(
            sys.executable, "-I", "-c", HARNESS,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(stdin), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Generated extraction for {url} killed after {self.timeout}s")
            return ExtractionResult(error=f"Extraction timed out after {self.timeout}s")
        finally:
            # Also reached when an outer deadline cancels us
            if proc.returncode is None:
                proc.kill()
                await proc.wait()

        err_text = stderr.decode(errors="replace").strip()
        if proc.returncode != 0:
            return ExtractionResult(error=f"Generated code exited with {proc.returncode}: {err_text[-STDERR_TAIL:]}")

        out_text = stdout.decode(errors="replace")
        if RESULT_MARKER not in out_text:
            return ExtractionResult(error="Generated code produced no result")

        try:
            payload = json.loads(out_text.split(RESULT_MARKER, 1)[1])
        except json.JSONDecodeError as e:
            return ExtractionResult(error=f"Generated code returned invalid JSON: {e}")

        return build_result(payload)
