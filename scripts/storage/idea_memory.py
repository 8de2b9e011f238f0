"""
Idea Memory for scheduled idea generation.

Persists generated ideas in SQLite (ideas + idea_history) and their
embeddings in a Qdrant collection keyed by idea id, so semantic
neighbours can be looked up for duplicate detection.
"""

import sqlite3
import json
import os
import re
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import List, Dict, Optional, Any
from pathlib import Path

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Distance,
    VectorParams,
    PointStruct,
    Filter,
    HasIdCondition
)


COLLECTION_NAME = "idea_embeddings"
FOLDER_SLUG_MAX = 50


def default_db_path() -> str:
    env_path = os.environ.get("IDEATION_DB_PATH")
    if env_path:
        return env_path
    project_root = Path(__file__).parent.parent.parent
    return str(project_root / "data" / "ideation.db")


def make_folder_name(name: str, now: Optional[datetime] = None) -> str:
    """ "AI Invoice Helper!" -> "ai-invoice-helper-2026-10" """
    now = now or datetime.now(timezone.utc)
    slug = re.sub(r"[^a-z0-9\s-]", "", name.lower())
    slug = re.sub(r"\s+", "-", slug)[:FOLDER_SLUG_MAX]
    return f"{slug}-{now.strftime('%Y-%m')}"


@dataclass
class IdeaRecord:
    """A persisted idea. Built once by the orchestrator and never mutated."""
    name: str
    domain: str
    problem: str
    solution: str
    quick_summary: str
    concrete_example: Dict[str, str]
    scores: Dict[str, int]
    evaluation_details: Dict[str, Dict[str, Any]]
    complexity_scores: Dict[str, float]
    score: int
    subdomain: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    generation_framework: str = ""
    raw_ai_response: str = ""
    ai_prompt: str = ""
    idea_components: Optional[Dict[str, Any]] = None
    quick_notes: Optional[Dict[str, Any]] = None
    action_plan: Optional[Dict[str, Any]] = None
    status: str = "draft"
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    folder_name: str = ""
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        if not self.folder_name:
            self.folder_name = make_folder_name(self.name)


@dataclass
class SimilarIdea:
    """A stored idea close to a query vector."""
    idea_id: str
    name: str
    similarity: float


_JSON_COLUMNS = [
    "concrete_example", "scores", "evaluation_details", "complexity_scores",
    "tags", "idea_components", "quick_notes", "action_plan"
]

_HISTORY_JSON_COLUMNS = ["before_data", "after_data"]

# Prompt and raw reply stay on the idea row only
_SNAPSHOT_EXCLUDED = {"raw_ai_response", "ai_prompt"}


def idea_snapshot(idea: IdeaRecord) -> Dict[str, Any]:
    return {k: v for k, v in asdict(idea).items() if k not in _SNAPSHOT_EXCLUDED}


class IdeaMemory:
    """SQLite idea store plus Qdrant embedding store."""

    def __init__(
        self,
        db_path: str = None,
        qdrant: Optional[QdrantClient] = None,
        qdrant_host: str = None,
        qdrant_port: int = None,
        collection_name: str = COLLECTION_NAME
    ):
        if db_path is None:
            db_path = default_db_path()
        self.db_path = db_path
        self.collection_name = collection_name

        db_dir = os.path.dirname(db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self._init_sqlite()

        if qdrant is None:
            qdrant = QdrantClient(
                host=qdrant_host or os.environ.get("QDRANT_HOST", "localhost"),
                port=int(qdrant_port or os.environ.get("QDRANT_PORT", 6333))
            )
        self.qdrant = qdrant

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_sqlite(self):
        """Initialize SQLite database with required tables."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS ideas (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                folder_name TEXT,
                status TEXT DEFAULT 'draft',
                score INTEGER,
                domain TEXT,
                subdomain TEXT,
                problem TEXT,
                solution TEXT,
                quick_summary TEXT,
                concrete_example JSON,
                scores JSON,
                evaluation_details JSON,
                complexity_scores JSON,
                tags JSON,
                idea_components JSON,
                quick_notes JSON,
                action_plan JSON,
                generation_framework TEXT,
                raw_ai_response TEXT,
                ai_prompt TEXT,
                created_at TIMESTAMP
            )
        ''')

        cursor.execute('''
            CREATE TABLE IF NOT EXISTS idea_history (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                idea_id TEXT NOT NULL,
                change_type TEXT NOT NULL,
                description TEXT NOT NULL,
                before_data JSON,
                after_data JSON,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        conn.commit()
        conn.close()

    # =========================================================================
    # Ideas
    # =========================================================================

    def save_idea(self, idea: IdeaRecord) -> str:
        """Insert the idea and its "created" history entry. Returns the idea id."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        cursor.execute('''
            INSERT INTO ideas (id, name, folder_name, status, score, domain, subdomain,
                               problem, solution, quick_summary, concrete_example, scores,
                               evaluation_details, complexity_scores, tags, idea_components,
                               quick_notes, action_plan, generation_framework,
                               raw_ai_response, ai_prompt, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ''', (
            idea.id, idea.name, idea.folder_name, idea.status, idea.score,
            idea.domain, idea.subdomain, idea.problem, idea.solution, idea.quick_summary,
            json.dumps(idea.concrete_example),
            json.dumps(idea.scores),
            json.dumps(idea.evaluation_details),
            json.dumps(idea.complexity_scores),
            json.dumps(idea.tags),
            json.dumps(idea.idea_components) if idea.idea_components is not None else None,
            json.dumps(idea.quick_notes) if idea.quick_notes is not None else None,
            json.dumps(idea.action_plan) if idea.action_plan is not None else None,
            idea.generation_framework, idea.raw_ai_response, idea.ai_prompt,
            idea.created_at
        ))
        cursor.execute('''
            INSERT INTO idea_history (idea_id, change_type, description, before_data, after_data)
            VALUES (?, 'created', ?, NULL, ?)
        ''', (idea.id, "Idea generated by Claude API", json.dumps(idea_snapshot(idea))))
        conn.commit()
        conn.close()
        return idea.id

    def get_idea(self, idea_id: str) -> Optional[Dict]:
        conn = self._connect()
        row = conn.execute("SELECT * FROM ideas WHERE id = ?", (idea_id,)).fetchone()
        conn.close()
        if row is None:
            return None
        idea = dict(row)
        for column in _JSON_COLUMNS:
            if idea.get(column) is not None:
                idea[column] = json.loads(idea[column])
        return idea

    def get_history(self, idea_id: str) -> List[Dict]:
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM idea_history WHERE idea_id = ? ORDER BY id", (idea_id,)
        ).fetchall()
        conn.close()

        history = []
        for row in rows:
            entry = dict(row)
            for column in _HISTORY_JSON_COLUMNS:
                if entry.get(column) is not None:
                    entry[column] = json.loads(entry[column])
            history.append(entry)
        return history

    def get_recent_ideas(self, limit: int = 10) -> List[Dict]:
        conn = self._connect()
        rows = conn.execute('''
            SELECT id, name, score, domain, subdomain, generation_framework, created_at
            FROM ideas ORDER BY created_at DESC LIMIT ?
        ''', (limit,)).fetchall()
        conn.close()
        return [dict(row) for row in rows]

    def delete_idea(self, idea_id: str) -> bool:
        """Delete the idea, its history and its embedding point."""
        conn = sqlite3.connect(self.db_path)
        cursor = conn.cursor()
        cursor.execute("DELETE FROM idea_history WHERE idea_id = ?", (idea_id,))
        cursor.execute("DELETE FROM ideas WHERE id = ?", (idea_id,))
        deleted = cursor.rowcount > 0
        conn.commit()
        conn.close()

        if self._collection_exists():
            self.qdrant.delete(
                collection_name=self.collection_name,
                points_selector=[idea_id]
            )
        return deleted

    # =========================================================================
    # Embeddings
    # =========================================================================

    def _collection_exists(self) -> bool:
        return self.qdrant.collection_exists(self.collection_name)

    def _ensure_collection(self, size: int) -> None:
        if self._collection_exists():
            return
        self.qdrant.create_collection(
            collection_name=self.collection_name,
            vectors_config=VectorParams(size=size, distance=Distance.COSINE)
        )
        print(f"Created Qdrant collection: {self.collection_name}")

    def store_embedding(self, idea_id: str, embedding: List[float], payload: Dict = None) -> None:
        """Upsert the idea's vector. Point id is the idea id."""
        self._ensure_collection(len(embedding))
        self.qdrant.upsert(
            collection_name=self.collection_name,
            points=[PointStruct(
                id=idea_id,
                vector=list(embedding),
                payload=payload or {}
            )]
        )

    def has_embeddings(self) -> bool:
        if not self._collection_exists():
            return False
        return self.qdrant.count(self.collection_name).count > 0

    def find_similar(
        self,
        embedding: List[float],
        limit: int = 10,
        exclude_id: Optional[str] = None
    ) -> List[SimilarIdea]:
        """
        Nearest stored ideas by cosine similarity.

        Args:
            embedding: Query vector
            limit: Candidates fetched before filtering
            exclude_id: Idea id to leave out of the results

        Returns:
            Matches ordered by descending similarity
        """
        if not self._collection_exists():
            return []

        query_filter = None
        if exclude_id:
            query_filter = Filter(must_not=[HasIdCondition(has_id=[exclude_id])])

        points = self.qdrant.query_points(
            collection_name=self.collection_name,
            query=list(embedding),
            query_filter=query_filter,
            limit=limit,
            with_payload=True
        ).points

        return [
            SimilarIdea(
                idea_id=str(p.id),
                name=(p.payload or {}).get("name", ""),
                similarity=float(p.score)
            )
            for p in points
        ]
