# _logging.py
from __future__ import annotations
import os, re, sys, datetime, json, threading
from typing import Any, Optional, TextIO, Mapping, Dict

RESET = "\033[0m"
DIM = "\033[90m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[33m"
BLUE = "\033[94m"

LEVELS = {"silent": 60, "error": 40, "warn": 30, "info": 20, "debug": 10}
LEVEL_TAG = {"debug": "[debug]", "info": "[i]", "warn": "[!]", "error": "[!]", "success": "[✓]"}

# apikey=... in query strings (SABnzbd, Tautulli, *arr image paths)
_SECRET_RE = re.compile(r"(?i)(apikey=|api_key=|x-api-key[\"']?\s*[:=]\s*[\"']?)([^&\s\"']+)")


def redact(text: str) -> str:
    return _SECRET_RE.sub(lambda m: m.group(1) + "***", text)


class Logger:
    """Stdout logger with service context, optional JSON-lines sink, secrets redacted."""
    def __init__(
        self,
        stream: TextIO = sys.stdout,
        level: str = "info",
        use_color: bool = True,
        show_time: bool = True,
        time_fmt: str = "%Y-%m-%d %H:%M:%S",
        *,
        _context: Optional[Dict[str, Any]] = None,
        _json_stream: Optional[TextIO] = None,
        _lock: Optional[threading.Lock] = None,
    ):
        self.stream = stream
        self.level_no = LEVELS.get(level, 20)
        self.use_color = use_color
        self.show_time = show_time
        self.time_fmt = time_fmt
        self._context: Dict[str, Any] = dict(_context or {})
        self._json_stream = _json_stream
        self._lock = _lock or threading.Lock()

    @classmethod
    def from_env(cls, stream: TextIO = sys.stdout) -> "Logger":
        lg = cls(
            stream=stream,
            level=(os.getenv("HSC_LOG_LEVEL") or "info").lower(),
            use_color=not os.getenv("NO_COLOR"),
        )
        json_path = os.getenv("HSC_LOG_JSON")
        if json_path:
            lg.enable_json(json_path)
        return lg

    # ----- config
    def set_level(self, level: str) -> None:
        self.level_no = LEVELS.get(level, self.level_no)

    @property
    def level_name(self) -> str:
        for k, v in LEVELS.items():
            if v == self.level_no:
                return k
        return "info"

    def enable_json(self, file_path: str) -> None:
        self._json_stream = open(file_path, "a", encoding="utf-8")

    # ----- context
    def bind(self, **ctx: Any) -> "Logger":
        new_ctx = dict(self._context); new_ctx.update(ctx)
        return Logger(
            stream=self.stream,
            level=self.level_name,
            use_color=self.use_color,
            show_time=self.show_time,
            time_fmt=self.time_fmt,
            _context=new_ctx,
            _json_stream=self._json_stream,
            _lock=self._lock,
        )

    def child(self, name: str) -> "Logger":
        parent = self._context.get("module")
        return self.bind(module=f"{parent}.{name}" if parent else name)

    # ----- output
    def _line(self, level: str, msg: str) -> str:
        tag = LEVEL_TAG.get(level, "[i]")
        if self.use_color:
            col = {"[i]": BLUE, "[debug]": YELLOW, "[✓]": GREEN, "[!]": RED}.get(tag, "")
            tag = f"{col}{tag}{RESET}"
        mod = self._context.get("module")
        body = f"{tag} {mod}: {msg}" if mod else f"{tag} {msg}"
        if not self.show_time:
            return body
        ts = datetime.datetime.now().strftime(self.time_fmt)
        return f"{DIM}[{ts}]{RESET} {body}" if self.use_color else f"[{ts}] {body}"

    def _emit(self, level: str, threshold: str, parts: tuple, extra: Optional[Mapping[str, Any]]) -> None:
        if self.level_no > LEVELS[threshold]:
            return
        msg = redact(" ".join(str(p) for p in parts))
        with self._lock:
            self.stream.write(self._line(level, msg) + "\n")
            self.stream.flush()
            if self._json_stream:
                payload: Dict[str, Any] = {
                    "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds"),
                    "level": level,
                    "msg": msg,
                    "ctx": self._context,
                }
                if extra:
                    payload["extra"] = dict(extra)
                self._json_stream.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
                self._json_stream.flush()

    def debug(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("debug", "debug", parts, extra)

    def info(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("info", "info", parts, extra)

    def success(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("success", "info", parts, extra)

    def warn(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("warn", "warn", parts, extra)

    # alias for libraries that call .warning
    def warning(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self.warn(*parts, extra=extra)

    def error(self, *parts: Any, extra: Optional[Mapping[str, Any]] = None) -> None:
        self._emit("error", "error", parts, extra)


# default instance
log = Logger.from_env()

__all__ = ["Logger", "log", "redact", "LEVELS"]
