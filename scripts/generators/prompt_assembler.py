"""
Prompt Assembler for scheduled idea generation.

Builds the single generation prompt from a configuration profile:
- Picks a framework (named, or random among enabled ones)
- Samples domain / problem / solution options
- Renders the evaluation schema from the configured criteria
- Substitutes placeholders into the configured or default template

The only source of nondeterminism is the injected random.Random, so tests
can seed it.
"""

import random
from dataclasses import dataclass
from typing import List, Optional

from pipeline_errors import ConfigurationError
from storage.config_provider import GenerationConfig, Framework, DomainOption
from evaluators.weighted_score import DEFAULT_CRITERIA_WEIGHTS


SAMPLE_SIZE = 5
MAX_SUBDOMAINS_PER_DOMAIN = 4
DEFAULT_CRITERIA_COUNT = 10

FALLBACK_DOMAIN = "Technology"
FALLBACK_PROBLEM = "Time Consuming"
FALLBACK_SOLUTION = "Automation"

DEFAULT_PROMPT_TEMPLATE = """You are an expert at generating well-researched software business ideas. Generate ONE new, specific idea using the framework and constraints below.

**Generation Framework**: {framework_name}
{framework_description}
{framework_template}
{framework_example}

**Constraints** (choose from the options provided):
- **Domain Options** (pick one or combine related ones):
- {domains}

- **Problem Type Options** (select the most relevant):
- {problems}

- **Solution Type Options** (choose the best fit):
- {solutions}

- **Monetization Models**: {monetization_models}
- **Target Audiences**: {target_audiences}

**Additional Filters**:
  {extra_filters}

**Evaluation Criteria** (each scored 1-10):
{criteria}

---

Return ONLY valid JSON in this exact format:
```json
{
  "name": "Idea Name (max 60 characters)",
  "domain": "Parent Domain → Subdomain",
  "problem": "Brief problem description",
  "solution": "Brief solution description",
  "quickSummary": "1-2 sentence elevator pitch",
  "concreteExample": {
    "currentState": "How users handle this problem today",
    "yourSolution": "How they would use your solution",
    "keyImprovement": "Quantifiable improvement"
  },
  "ideaComponents": {
    "monetization": "Revenue model",
    "targetAudience": "Specific user segment",
    "technology": "Core tech stack",
    "marketSize": "Market size category with numbers"
  },
{evaluation_schema},
  "quickNotes": {
    "strengths": ["..."],
    "weaknesses": ["..."],
    "keyAssumptions": ["..."],
    "nextSteps": ["..."],
    "references": ["..."]
  },
  "actionPlan": {
    "nextSteps": [{"step": 1, "title": "...", "description": "...", "duration": "...", "successMetric": "..."}],
    "timeline": {"mvp": "...", "firstRevenue": "...", "breakeven": "..."}
  },
  "tags": ["tag1", "tag2", "tag3"]
}
```

IMPORTANT:
- All {criteria_count} evaluation criteria MUST be present, each with its questions answered in detail
- Be realistic and honest in scoring - not everything should be 8-10
- Use specific numbers, metrics and evidence throughout"""


@dataclass
class AssembledPrompt:
    """Prompt text plus the framework actually used (matters for random picks)."""
    prompt: str
    framework_name: str


class PromptAssembler:
    """Builds generation prompts from a GenerationConfig."""

    def __init__(self, config: GenerationConfig, rng: Optional[random.Random] = None):
        self.config = config
        self.rng = rng or random.Random()

    # =========================================================================
    # Framework selection
    # =========================================================================

    def select_framework(self, framework_name: Optional[str] = None) -> Framework:
        """
        Resolve the framework for this run.

        Args:
            framework_name: Case-insensitive name, or None for a random pick

        Returns:
            The selected Framework

        Raises:
            ConfigurationError: Unknown name, or no enabled framework
        """
        if framework_name:
            wanted = framework_name.lower()
            for framework in self.config.frameworks:
                if framework.name.lower() == wanted:
                    return framework
            raise ConfigurationError(
                f"Framework not found: {framework_name}",
                details={"framework": framework_name}
            )

        enabled = self.config.enabled_frameworks
        if not enabled:
            raise ConfigurationError("No enabled frameworks found in configuration")
        return self.rng.choice(enabled)

    # =========================================================================
    # Option sampling
    # =========================================================================

    def _sample(self, items: List, count: int) -> List:
        return self.rng.sample(items, min(count, len(items)))

    def sample_domains(self, domain_hint: Optional[str] = None) -> List[str]:
        """Sample domain options rendered as "Domain" or "Domain → Subdomain"."""
        domains = self.config.domains
        if domain_hint:
            wanted = domain_hint.strip().lower()
            matching = [d for d in domains if d.name.lower() == wanted]
            domains = matching or [DomainOption(name=domain_hint.strip())]

        if not domains:
            return [FALLBACK_DOMAIN]

        options = []
        for domain in self._sample(domains, SAMPLE_SIZE):
            if domain.subdomains:
                for sub in self._sample(domain.subdomains, MAX_SUBDOMAINS_PER_DOMAIN):
                    options.append(f"{domain.name} → {sub}")
            else:
                options.append(domain.name)
        return options

    def sample_problems(self) -> List[str]:
        return self._sample(self.config.problem_types, SAMPLE_SIZE) or [FALLBACK_PROBLEM]

    def sample_solutions(self) -> List[str]:
        return self._sample(self.config.solution_types, SAMPLE_SIZE) or [FALLBACK_SOLUTION]

    # =========================================================================
    # Rendering
    # =========================================================================

    def format_criteria(self) -> str:
        if not self.config.criteria:
            return "\n".join(f"- {key}" for key in DEFAULT_CRITERIA_WEIGHTS)
        return "\n".join(
            f"- {c.name}: {c.description}" if c.description else f"- {c.name}"
            for c in self.config.criteria
        )

    def build_evaluation_schema(self) -> str:
        """JSON skeleton of the "evaluation" object the model must return."""
        if self.config.criteria:
            entries = [(c.key, c.questions) for c in self.config.criteria]
        else:
            entries = [(key, []) for key in DEFAULT_CRITERIA_WEIGHTS]

        blocks = []
        for key, questions in entries:
            question_lines = ",\n".join(
                f'        {{"question": "{q}", "answer": "Specific detailed answer"}}'
                for q in questions
            )
            blocks.append(
                f'    "{key}": {{\n'
                f'      "score": 7,\n'
                f'      "reasoning": "2-3 sentences explaining the score with specific evidence",\n'
                f'      "questions": [\n{question_lines}\n      ]\n'
                f'    }}'
            )
        return '  "evaluation": {\n' + ",\n".join(blocks) + "\n  }"

    def build_extra_filters(self) -> str:
        active = [f for f in self.config.extra_filters if f.enabled]
        if not active:
            return "None"
        return "\n  ".join(f"- {f.render()}" for f in active)

    @property
    def criteria_count(self) -> int:
        return len(self.config.criteria) or DEFAULT_CRITERIA_COUNT

    def assemble(
        self,
        framework_name: Optional[str] = None,
        domain_hint: Optional[str] = None
    ) -> AssembledPrompt:
        """
        Build the prompt for one generation run.

        Args:
            framework_name: Optional framework to force
            domain_hint: Optional domain to restrict sampling to

        Returns:
            AssembledPrompt with prompt text and the framework used
        """
        framework = self.select_framework(framework_name)
        template = self.config.prompt_template or DEFAULT_PROMPT_TEMPLATE

        replacements = [
            ("{framework_name}", framework.name),
            ("{framework_description}",
             f"**Description**: {framework.description}" if framework.description else ""),
            ("{framework_template}",
             f"**Template**: {framework.template}" if framework.template else ""),
            ("{framework_example}",
             f"**Example**: {framework.example}" if framework.example else ""),
            ("{domains}", "\n- ".join(self.sample_domains(domain_hint))),
            ("{problems}", "\n- ".join(self.sample_problems())),
            ("{solutions}", "\n- ".join(self.sample_solutions())),
            ("{criteria}", self.format_criteria()),
            ("{evaluation_schema}", self.build_evaluation_schema()),
            ("{criteria_count}", str(self.criteria_count)),
            ("{extra_filters}", self.build_extra_filters()),
            ("{monetization_models}", ", ".join(self.config.monetization_models)),
            ("{target_audiences}", ", ".join(self.config.target_audiences)),
        ]

        prompt = template
        for placeholder, value in replacements:
            prompt = prompt.replace(placeholder, value)

        return AssembledPrompt(prompt=prompt, framework_name=framework.name)
