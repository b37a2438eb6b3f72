"""SQLite backend for the LearningStore protocol.

Provides a concrete implementation backed by Python's built-in ``sqlite3``
module.  Suitable for single-node deployments and testing; pass
``":memory:"`` for a throwaway store.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Iterator

from ingestkit_cellguard.classifier import is_floor_char, is_strict_ascii
from ingestkit_cellguard.config import CellGuardConfig
from ingestkit_cellguard.errors import CellGuardException, ErrorCode
from ingestkit_cellguard.learning import (
    DEFAULT_CONFIDENCE,
    character_fingerprint,
    column_confidence,
    derive_character_substitutions,
    detect_language_context,
    exact_match_confidence,
    exact_value_insight_confidence,
    infer_column_type,
    mapping_confidence,
    pattern_confidence,
    sequence_confidence,
)
from ingestkit_cellguard.models import (
    EnhancedSuggestion,
    InsightType,
    LearningInsight,
    LearningStats,
    OverrideContext,
    ProblemType,
    ProblemTypeCount,
    WhitelistedCharacter,
    utc_now,
)

logger = logging.getLogger("ingestkit_cellguard")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS override_patterns (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    original_value TEXT NOT NULL,
    suggested_fix TEXT NOT NULL,
    user_override TEXT NOT NULL,
    column_name TEXT NOT NULL,
    column_type TEXT NOT NULL DEFAULT 'text',
    problem_type TEXT NOT NULL,
    character_pattern TEXT NOT NULL DEFAULT '',
    language_context TEXT NOT NULL DEFAULT 'unknown',
    frequency_count INTEGER NOT NULL DEFAULT 1,
    first_seen TEXT NOT NULL,
    last_seen TEXT NOT NULL,
    UNIQUE (original_value, suggested_fix, user_override, column_name, problem_type)
);
CREATE INDEX IF NOT EXISTS idx_override_lookup
    ON override_patterns (original_value, column_name, problem_type);
CREATE INDEX IF NOT EXISTS idx_override_column
    ON override_patterns (column_name, problem_type);

CREATE TABLE IF NOT EXISTS character_mappings (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    from_char TEXT NOT NULL,
    to_char TEXT NOT NULL,
    char_type TEXT NOT NULL,
    usage_count INTEGER NOT NULL DEFAULT 1,
    confidence_score REAL NOT NULL DEFAULT 0.2,
    UNIQUE (from_char, to_char)
);

CREATE TABLE IF NOT EXISTS whitelisted_characters (
    char TEXT PRIMARY KEY,
    description TEXT NOT NULL DEFAULT '',
    added_at TEXT NOT NULL
);
"""

_UPSERT_OVERRIDE = """
INSERT INTO override_patterns (
    original_value, suggested_fix, user_override, column_name, column_type,
    problem_type, character_pattern, language_context, frequency_count,
    first_seen, last_seen
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
ON CONFLICT (original_value, suggested_fix, user_override, column_name, problem_type)
DO UPDATE SET
    frequency_count = override_patterns.frequency_count + 1,
    last_seen = excluded.last_seen
"""

_UPSERT_MAPPING = """
INSERT INTO character_mappings (from_char, to_char, char_type, usage_count, confidence_score)
VALUES (?, ?, ?, 1, ?)
ON CONFLICT (from_char, to_char)
DO UPDATE SET
    usage_count = character_mappings.usage_count + 1,
    confidence_score = ROUND(MIN((character_mappings.usage_count + 1) * 0.2, 1.0), 2)
"""


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteLearningStore:
    """SQLite-backed override history, character mappings, and whitelist.

    Satisfies :class:`~ingestkit_cellguard.protocols.LearningStore` via
    structural subtyping (no inheritance required).  One connection is
    shared across threads; a lock serializes access to it.

    Parameters
    ----------
    db_path:
        Filesystem path or ``":memory:"`` for an in-memory database.
    config:
        Thresholds for suggestions and insights.
    """

    def __init__(
        self,
        db_path: str = ":memory:",
        config: CellGuardConfig | None = None,
    ) -> None:
        self._db_path = db_path
        self._config = config or CellGuardConfig()
        self._lock = threading.Lock()
        try:
            self._conn = sqlite3.connect(db_path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(_SCHEMA)
        except sqlite3.Error as exc:
            raise ConnectionError(
                f"Failed to open learning database at {db_path}: {exc}"
            ) from exc

    # ------------------------------------------------------------------
    # Override history
    # ------------------------------------------------------------------

    def store_override_pattern(
        self,
        original: str,
        suggested_fix: str,
        user_override: str,
        context: OverrideContext,
    ) -> None:
        """Upsert one override.

        A repeat of the same (original, suggested fix, override, column,
        problem type) increments ``frequency_count``.  A first occurrence
        also records the character substitutions between *original* and
        the default fix.

        Raises
        ------
        CellGuardException
            ``E_BACKEND_LEARNING_WRITE`` if the write fails.
        """
        now = utc_now().isoformat()
        column_type = context.column_type or infer_column_type(
            context.column_name, user_override
        )
        key = (
            original,
            suggested_fix,
            user_override,
            context.column_name,
            context.problem_type.value,
        )
        with self._guard(ErrorCode.E_BACKEND_LEARNING_WRITE, "store override pattern"):
            with self._conn:
                existing = self._conn.execute(
                    "SELECT 1 FROM override_patterns WHERE original_value = ? "
                    "AND suggested_fix = ? AND user_override = ? "
                    "AND column_name = ? AND problem_type = ?",
                    key,
                ).fetchone()
                self._conn.execute(
                    _UPSERT_OVERRIDE,
                    (
                        *key[:4],
                        column_type,
                        key[4],
                        character_fingerprint(original),
                        detect_language_context(original),
                        now,
                        now,
                    ),
                )
                if existing is None:
                    for from_char, to_char, char_type in derive_character_substitutions(
                        original, suggested_fix
                    ):
                        self._conn.execute(
                            _UPSERT_MAPPING,
                            (from_char, to_char, char_type, mapping_confidence(1)),
                        )
        logger.debug(
            "Stored override for column '%s' (%s)",
            context.column_name,
            context.problem_type.value,
        )

    def get_enhanced_suggestion(
        self,
        original: str,
        column_name: str,
        problem_type: ProblemType,
        default_suggestion: str,
    ) -> EnhancedSuggestion:
        """Return the best known fix for *original*.

        Tiers, first hit wins: exact history for this value in this column
        and problem type; the most common override among similar rows
        (same column and problem type, or sharing a special character with
        the value's prefix); the default suggestion.

        Raises
        ------
        CellGuardException
            ``E_BACKEND_LEARNING_READ`` if the query fails.
        """
        cfg = self._config
        with self._guard(ErrorCode.E_BACKEND_LEARNING_READ, "read suggestions"):
            exact = self._conn.execute(
                "SELECT user_override, SUM(frequency_count) AS total "
                "FROM override_patterns "
                "WHERE original_value = ? AND column_name = ? AND problem_type = ? "
                "GROUP BY user_override ORDER BY total DESC, MAX(last_seen) DESC "
                "LIMIT 1",
                (original, column_name, problem_type.value),
            ).fetchone()
            if exact is not None and exact["total"] >= cfg.exact_match_min_frequency:
                return EnhancedSuggestion(
                    suggestion=exact["user_override"],
                    confidence=exact_match_confidence(exact["total"]),
                    reason=f"Seen {exact['total']} times for this value in '{column_name}'",
                    learned=True,
                )

            clauses = ["(column_name = ? AND problem_type = ?)"]
            params: list[Any] = [column_name, problem_type.value]
            prefix_chars = {
                c
                for c in original[: cfg.fingerprint_prefix_length]
                if not is_strict_ascii(c)
            }
            for char in sorted(prefix_chars):
                clauses.append("instr(character_pattern, ?) > 0")
                params.append(char)
            similar = self._conn.execute(
                "SELECT user_override, SUM(frequency_count) AS total "
                "FROM override_patterns WHERE " + " OR ".join(clauses) + " "
                "GROUP BY user_override ORDER BY total DESC, MAX(last_seen) DESC "
                "LIMIT 1",
                params,
            ).fetchone()
            if similar is not None and similar["total"] >= cfg.pattern_min_count:
                return EnhancedSuggestion(
                    suggestion=similar["user_override"],
                    confidence=pattern_confidence(similar["total"]),
                    reason=f"Common fix across {similar['total']} similar overrides",
                    learned=True,
                )

        return EnhancedSuggestion(
            suggestion=default_suggestion,
            confidence=DEFAULT_CONFIDENCE,
            reason="Default character normalization",
            learned=False,
        )

    # ------------------------------------------------------------------
    # Insights and statistics
    # ------------------------------------------------------------------

    def analyze_patterns(self) -> list[LearningInsight]:
        """Mine the override history into insights, highest confidence first."""
        min_count = self._config.pattern_min_count
        insights: list[LearningInsight] = []
        with self._guard(ErrorCode.E_BACKEND_LEARNING_READ, "analyze patterns"):
            conn = self._conn

            for row in conn.execute(
                "SELECT original_value, user_override, SUM(frequency_count) AS total, "
                "GROUP_CONCAT(DISTINCT column_name) AS columns "
                "FROM override_patterns GROUP BY original_value, user_override "
                "HAVING total >= ? ORDER BY total DESC",
                (min_count,),
            ):
                columns = (row["columns"] or "").split(",")
                insights.append(
                    LearningInsight(
                        type=InsightType.EXACT_VALUE_MATCH,
                        pattern=row["original_value"],
                        suggestion=row["user_override"],
                        confidence=exact_value_insight_confidence(row["total"]),
                        usage_count=row["total"],
                        examples=columns,
                        sample_column=columns[0] if columns else None,
                    )
                )

            for row in conn.execute(
                "SELECT from_char, to_char, char_type, usage_count "
                "FROM character_mappings WHERE usage_count >= ? "
                "ORDER BY usage_count DESC",
                (min_count,),
            ):
                insights.append(
                    LearningInsight(
                        type=InsightType.CHARACTER_MAPPING,
                        pattern=row["from_char"],
                        suggestion=row["to_char"],
                        confidence=mapping_confidence(row["usage_count"]),
                        usage_count=row["usage_count"],
                        examples=[f"{row['from_char']} -> {row['to_char']}"],
                    )
                )

            for row in conn.execute(
                "SELECT character_pattern, SUM(frequency_count) AS total, "
                "COUNT(DISTINCT user_override) AS variety, "
                "MIN(column_name) AS sample_column "
                "FROM override_patterns WHERE character_pattern != '' "
                "GROUP BY character_pattern "
                "HAVING total >= ? AND variety <= ? ORDER BY total DESC",
                (min_count, self._config.max_fix_variants),
            ):
                fixes = self._top_overrides(
                    "character_pattern = ?", (row["character_pattern"],)
                )
                insights.append(
                    LearningInsight(
                        type=InsightType.CHARACTER_SEQUENCE,
                        pattern=row["character_pattern"],
                        suggestion=fixes[0] if fixes else "",
                        confidence=sequence_confidence(row["total"], row["variety"]),
                        usage_count=row["total"],
                        examples=fixes,
                        fix_variety=row["variety"],
                        sample_column=row["sample_column"],
                    )
                )

            for row in conn.execute(
                "SELECT column_name, problem_type, SUM(frequency_count) AS total "
                "FROM override_patterns GROUP BY column_name, problem_type "
                "HAVING total >= ? ORDER BY total DESC",
                (min_count,),
            ):
                fixes = self._top_overrides(
                    "column_name = ? AND problem_type = ?",
                    (row["column_name"], row["problem_type"]),
                )
                insights.append(
                    LearningInsight(
                        type=InsightType.COLUMN_SPECIFIC,
                        pattern=f"{row['column_name']} / {row['problem_type']}",
                        suggestion=fixes[0] if fixes else "",
                        confidence=column_confidence(row["total"]),
                        usage_count=row["total"],
                        examples=fixes,
                        column_name=row["column_name"],
                        problem_type=ProblemType(row["problem_type"]),
                    )
                )

        insights.sort(key=lambda i: (i.confidence, i.usage_count), reverse=True)
        return insights

    def get_learning_stats(self) -> LearningStats:
        with self._guard(ErrorCode.E_BACKEND_LEARNING_READ, "read learning stats"):
            row = self._conn.execute(
                "SELECT COUNT(*) AS patterns, "
                "COUNT(DISTINCT column_name) AS columns, "
                "COUNT(DISTINCT problem_type) AS problem_types, "
                "COALESCE(SUM(frequency_count), 0) AS overrides, "
                "COALESCE(AVG(frequency_count), 0.0) AS average, "
                "MAX(last_seen) AS last_seen "
                "FROM override_patterns"
            ).fetchone()
            breakdown = [
                ProblemTypeCount(problem_type=ProblemType(r["problem_type"]), count=r["n"])
                for r in self._conn.execute(
                    "SELECT problem_type, COUNT(*) AS n FROM override_patterns "
                    "GROUP BY problem_type ORDER BY n DESC, problem_type"
                )
            ]
        return LearningStats(
            total_patterns=row["patterns"],
            unique_columns=row["columns"],
            unique_problem_types=row["problem_types"],
            total_overrides=row["overrides"],
            average_frequency=round(float(row["average"]), 2),
            last_override_at=_parse_ts(row["last_seen"]),
            problem_breakdown=breakdown,
        )

    def train(self) -> list[LearningInsight]:
        """Recompute mapping confidences from usage counts; return insights."""
        with self._guard(ErrorCode.E_BACKEND_LEARNING_WRITE, "train mappings"):
            with self._conn:
                cursor = self._conn.execute(
                    "UPDATE character_mappings "
                    "SET confidence_score = ROUND(MIN(usage_count * 0.2, 1.0), 2)"
                )
        logger.info("Retrained %d character mappings", cursor.rowcount)
        return self.analyze_patterns()

    def export_data(self) -> dict[str, list[dict[str, Any]]]:
        """Dump every table as lists of plain dicts."""
        with self._guard(ErrorCode.E_BACKEND_LEARNING_READ, "export learning data"):
            return {
                table: [dict(r) for r in self._conn.execute(f"SELECT * FROM {table}")]
                for table in (
                    "override_patterns",
                    "character_mappings",
                    "whitelisted_characters",
                )
            }

    # ------------------------------------------------------------------
    # Whitelist
    # ------------------------------------------------------------------

    def load_whitelist(self) -> list[WhitelistedCharacter]:
        with self._guard(ErrorCode.E_BACKEND_LEARNING_READ, "load whitelist"):
            rows = self._conn.execute(
                "SELECT char, description, added_at FROM whitelisted_characters "
                "ORDER BY added_at"
            ).fetchall()
        return [
            WhitelistedCharacter(
                char=r["char"],
                description=r["description"],
                added_at=_parse_ts(r["added_at"]),
            )
            for r in rows
        ]

    def add_whitelisted_character(self, char: str, description: str = "") -> None:
        """Persist *char*; floor characters are silently refused."""
        if is_floor_char(char):
            return
        with self._guard(ErrorCode.E_BACKEND_LEARNING_WRITE, "whitelist character"):
            with self._conn:
                self._conn.execute(
                    "INSERT OR IGNORE INTO whitelisted_characters "
                    "(char, description, added_at) VALUES (?, ?, ?)",
                    (char, description, utc_now().isoformat()),
                )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _guard(self, code: ErrorCode, action: str) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except sqlite3.Error as exc:
                raise CellGuardException(
                    code=code,
                    message=f"Failed to {action}: {exc}",
                    stage="learning",
                    recoverable=True,
                ) from exc

    def _top_overrides(self, where: str, params: tuple[Any, ...]) -> list[str]:
        rows = self._conn.execute(
            "SELECT user_override, SUM(frequency_count) AS total "
            f"FROM override_patterns WHERE {where} "
            "GROUP BY user_override ORDER BY total DESC, user_override LIMIT ?",
            (*params, self._config.max_fix_variants),
        ).fetchall()
        return [r["user_override"] for r in rows]

    # ------------------------------------------------------------------
    # Resource management
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the underlying SQLite connection."""
        self._conn.close()

    def __del__(self) -> None:
        try:
            self._conn.close()
        except Exception:  # noqa: BLE001
            pass
