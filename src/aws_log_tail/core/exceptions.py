from typing import Optional, Dict, Any, Sequence


class LogTailError(Exception):
    def __init__(
        self,
        message: str,
        code: str = "LOG_TAIL_ERROR",
        exit_code: int = 1,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.exit_code = exit_code
        self.details = details or {}
        super().__init__(self.message)


class LogSourceError(LogTailError):
    def __init__(self, operation: str, message: str):
        super().__init__(
            f"Log source operation '{operation}' failed: {message}",
            "LOG_SOURCE_ERROR",
            details={"operation": operation}
        )


class DiscoveryError(LogTailError):
    def __init__(self, message: str = "Stream discovery failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, "DISCOVERY_ERROR", details=details)


class NoStreamsError(LogTailError):
    def __init__(self, log_group: str, mode: str = "instances", prefixes: Sequence[str] = ()):
        if mode == "range":
            reason = "no stream has events in the requested time range"
        elif prefixes:
            reason = f"no instance name starts with {', '.join(prefixes)}"
        else:
            reason = "no instances found"
        super().__init__(
            f"No streams found in log group {log_group}: {reason}",
            "NO_STREAMS",
            details={"log_group": log_group, "mode": mode, "prefixes": list(prefixes)}
        )


class StreamError(LogTailError):
    def __init__(self, stream_id: str, message: str, code: str):
        super().__init__(f"{stream_id}: {message}", code, details={"stream_id": stream_id})
        self.stream_id = stream_id


class StreamFetchError(StreamError):
    def __init__(self, stream_id: str, message: str):
        super().__init__(stream_id, message, "STREAM_FETCH_ERROR")


class FollowPollError(StreamError):
    def __init__(self, stream_id: str, message: str):
        super().__init__(stream_id, message, "FOLLOW_POLL_ERROR")


class ValidationError(LogTailError):
    def __init__(self, message: str = "Validation failed", code: str = "VALIDATION_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, 2, details)


class InvalidTimestampError(ValidationError):
    def __init__(self, value: str, message: str):
        super().__init__(
            f"Invalid timestamp '{value}': {message}",
            "INVALID_TIMESTAMP",
            {"value": value}
        )
