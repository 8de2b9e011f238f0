"""
Configuration Provider for the idea generation pipeline.

Supplies the values a generation run needs: evaluation criteria with
weights and questions, generation frameworks, domain / problem / solution
option lists, prompt template and model settings.

Profiles are stored as JSON files, one per profile:
    <config_dir>/default.json
    <config_dir>/<profile_id>.json
"""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Dict, Optional, Any

from pipeline_errors import ConfigurationError


DEFAULT_PROFILE = "default"


def to_camel_case(name: str) -> str:
    """Convert "Problem Severity" to "problemSeverity"."""
    words = [w for w in name.split(" ") if w]
    if not words:
        return ""
    return words[0].lower() + "".join(w[:1].upper() + w[1:].lower() for w in words[1:])


@dataclass
class CriterionConfig:
    """A configured evaluation criterion."""
    name: str
    weight: float = 1.0
    description: str = ""
    questions: List[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return to_camel_case(self.name)

    @classmethod
    def from_dict(cls, data: Dict) -> 'CriterionConfig':
        weight = data.get("weight")
        return cls(
            name=data["name"],
            weight=float(weight) if weight is not None else 1.0,
            description=data.get("description", ""),
            questions=list(data.get("questions") or [])
        )


@dataclass
class Framework:
    """A named ideation heuristic used to bias prompt construction."""
    name: str
    description: str = ""
    template: str = ""
    example: str = ""
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Dict) -> 'Framework':
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            template=data.get("template", ""),
            example=data.get("example", ""),
            enabled=data.get("enabled", True) is not False
        )


@dataclass
class DomainOption:
    """A business domain with optional subdomains."""
    name: str
    subdomains: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Any) -> 'DomainOption':
        if isinstance(data, str):
            return cls(name=data)
        subdomains = []
        for sub in data.get("subdomains") or []:
            if isinstance(sub, str):
                subdomains.append(sub)
            elif sub.get("enabled", True) is not False:
                subdomains.append(sub["name"])
        return cls(name=data["name"], subdomains=subdomains)


@dataclass
class ExtraFilter:
    """Optional prompt constraint, e.g. "Maximum team size of {value}"."""
    prompt_text: str
    enabled: bool = False
    value: Any = None

    def render(self) -> str:
        text = self.prompt_text
        if self.value is not None:
            text = text.replace("{value}", str(self.value))
        return text

    @classmethod
    def from_dict(cls, data: Dict) -> 'ExtraFilter':
        return cls(
            prompt_text=data.get("promptText") or data.get("prompt_text", ""),
            enabled=bool(data.get("enabled", False)),
            value=data.get("value")
        )


def _names(items: List[Any]) -> List[str]:
    """Option lists may hold plain strings or {"name": ...} objects."""
    return [item["name"] if isinstance(item, dict) else str(item) for item in items or []]


@dataclass
class GenerationConfig:
    """Everything one generation run reads from its configuration profile."""
    criteria: List[CriterionConfig] = field(default_factory=list)
    frameworks: List[Framework] = field(default_factory=list)
    domains: List[DomainOption] = field(default_factory=list)
    problem_types: List[str] = field(default_factory=list)
    solution_types: List[str] = field(default_factory=list)
    monetization_models: List[str] = field(default_factory=list)
    target_audiences: List[str] = field(default_factory=list)
    extra_filters: List[ExtraFilter] = field(default_factory=list)
    prompt_template: Optional[str] = None
    temperature: float = 1.0
    max_tokens: int = 16384

    @property
    def enabled_frameworks(self) -> List[Framework]:
        return [f for f in self.frameworks if f.enabled]

    @property
    def criteria_keys(self) -> List[str]:
        return [c.key for c in self.criteria]

    def criteria_weights(self) -> Dict[str, float]:
        return {c.key: c.weight for c in self.criteria}

    @classmethod
    def from_dict(cls, data: Dict) -> 'GenerationConfig':
        settings = data.get("generation_settings") or {}
        return cls(
            criteria=[CriterionConfig.from_dict(c) for c in data.get("criteria") or []],
            frameworks=[Framework.from_dict(f) for f in data.get("frameworks") or []],
            domains=[DomainOption.from_dict(d) for d in data.get("domains") or []],
            problem_types=_names(data.get("problem_types")),
            solution_types=_names(data.get("solution_types")),
            monetization_models=_names(data.get("monetization_models")),
            target_audiences=_names(data.get("target_audiences")),
            extra_filters=[ExtraFilter.from_dict(f) for f in settings.get("extra_filters") or []],
            prompt_template=settings.get("idea_generation_prompt"),
            temperature=float(settings.get("temperature") or 1.0),
            max_tokens=int(settings.get("max_tokens") or 16384)
        )


class ConfigProvider:
    """Contract: return the generation config for a profile (None = default)."""

    def load(self, profile_id: Optional[str] = None) -> GenerationConfig:
        raise NotImplementedError


class StaticConfigProvider(ConfigProvider):
    """Serves one in-memory config for every profile."""

    def __init__(self, config: GenerationConfig):
        self.config = config

    def load(self, profile_id: Optional[str] = None) -> GenerationConfig:
        return self.config


class JsonConfigProvider(ConfigProvider):
    """Reads <config_dir>/<profile>.json, falling back to the default profile."""

    def __init__(self, config_dir: Optional[str] = None):
        if config_dir is None:
            config_dir = os.environ.get("IDEATION_CONFIG_DIR")
        if config_dir is None:
            project_root = Path(__file__).parent.parent.parent
            config_dir = str(project_root / "configs")
        self.config_dir = Path(config_dir)

    def _profile_path(self, profile_id: Optional[str]) -> Path:
        if profile_id:
            path = self.config_dir / f"{profile_id}.json"
            if path.exists():
                return path
            print(f"[ConfigProvider] Profile {profile_id} not found, falling back to default")
        return self.config_dir / f"{DEFAULT_PROFILE}.json"

    def load(self, profile_id: Optional[str] = None) -> GenerationConfig:
        path = self._profile_path(profile_id)
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration profile not found: {path}",
                details={"profile_id": profile_id, "path": str(path)}
            )
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Configuration profile is not valid JSON: {path}",
                details={"profile_id": profile_id, "error": str(e)}
            )
        return GenerationConfig.from_dict(data)
