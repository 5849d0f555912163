"""Exception taxonomy for CodeMap.

Per-file and per-patch failures are recovered and aggregated into result
objects; only structurally invalid requests propagate to the caller.
"""


class CodeMapError(Exception):
    """Base exception for all CodeMap errors."""

    pass


class ConfigError(CodeMapError):
    """Invalid or unreadable configuration."""

    pass


class ParseError(CodeMapError):
    """A single source file could not be scanned; the file is omitted."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to scan {path}: {reason}")
        self.path = path
        self.reason = reason


class AnalysisCancelled(CodeMapError):
    """A graph build was cancelled between files."""

    pass


class NodeNotFoundError(CodeMapError, KeyError):
    """An operation targeted a node id that is not in the graph."""

    def __init__(self, node_id: str):
        super().__init__(f"Node not found: {node_id}")
        self.node_id = node_id

    def __str__(self) -> str:
        return self.args[0]


class InvalidChangeError(CodeMapError, ValueError):
    """A change descriptor is missing data its change type requires."""

    pass


class PatchDriftError(CodeMapError):
    """The expected original line no longer matches the file."""

    def __init__(self, path: str, line: int, expected: str):
        super().__init__(
            f"Code has changed at {path}:{line}, expected '{expected.strip()}' "
            f"within the search window; patch not applied"
        )
        self.path = path
        self.line = line
        self.expected = expected


class FileMissingError(CodeMapError):
    """A patch targets a file that does not exist."""

    def __init__(self, path: str):
        super().__init__(f"File not found: {path}")
        self.path = path


class RollbackPartialFailure(CodeMapError):
    """Some inverse patches failed during a rollback."""

    def __init__(self, failed_ids):
        failed_ids = list(failed_ids)
        super().__init__(
            f"Rollback incomplete: {len(failed_ids)} patch(es) could not be reverted "
            f"({', '.join(failed_ids)})"
        )
        self.failed_ids = failed_ids


class PatchRangeError(CodeMapError, IndexError):
    """A patch targets a line outside the file."""

    def __init__(self, path: str, line: int, total: int):
        super().__init__(f"Line {line} out of range for {path} ({total} line(s))")
        self.path = path
        self.line = line
        self.total = total
