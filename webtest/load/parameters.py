"""Per-request parameter sources.

Templated mode draws fresh query parameters for every request from an
explicit ``random.Random`` handle; literal mode hands back the configured
URL unchanged. Draws happen on the event-loop thread right before a task is
launched, so a single generator per run is safe. Seed it for reproducible
runs.
"""

import random
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import urlencode

from webtest.load.models import RequestTask, RunConfig

FieldGenerator = Callable[[random.Random], str]

CALCULATOR_BASE_URL = "https://calc.test.trahan.dev/calculated"


def random_int(low: int, high: int) -> FieldGenerator:
    """Integer drawn uniformly from ``[low, high]`` inclusive."""

    def draw(rng: random.Random) -> str:
        return str(rng.randint(low, high))

    return draw


def random_decimal(low: float, high: float, places: int = 2) -> FieldGenerator:
    """Float drawn uniformly from ``[low, high]``, formatted to *places* decimals."""

    def draw(rng: random.Random) -> str:
        return f"{rng.uniform(low, high):.{places}f}"

    return draw


@dataclass(frozen=True)
class QueryTemplate:
    """Base URL plus an ordered list of named field generators."""

    name: str
    base_url: str
    fields: tuple[tuple[str, FieldGenerator], ...]

    def draw(self, rng: random.Random) -> list[tuple[str, str]]:
        return [(key, generate(rng)) for key, generate in self.fields]

    def render(self, rng: random.Random) -> str:
        params = urlencode(self.draw(rng))
        separator = "&" if "?" in self.base_url else "?"
        return f"{self.base_url}{separator}{params}" if params else self.base_url


def calculator_template(base_url: str = CALCULATOR_BASE_URL) -> QueryTemplate:
    """Compound-interest calculator query: amounts, rate and duration in years."""
    return QueryTemplate(
        name="calculator",
        base_url=base_url,
        fields=(
            ("initAmount", random_int(500, 100_000)),
            ("monthlyContribution", random_int(50, 5_000)),
            ("interestRate", random_decimal(0.1, 200.0)),
            ("numberOfYears", random_int(1, 50)),
        ),
    )


TEMPLATES: dict[str, Callable[..., QueryTemplate]] = {
    "calculator": calculator_template,
}


def get_template(name: str, base_url: str | None = None) -> QueryTemplate:
    try:
        factory = TEMPLATES[name]
    except KeyError:
        raise KeyError(
            f"Unknown template {name!r}; choose from {sorted(TEMPLATES)}"
        ) from None
    return factory(base_url) if base_url else factory()


class TemplatedParameterSource:
    def __init__(
        self,
        template: QueryTemplate,
        auth_token: str | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.template = template
        self.auth_token = auth_token
        self.rng = rng or random.Random()

    def task_for(self, sequence_id: int) -> RequestTask:
        return RequestTask(
            sequence_id=sequence_id,
            resolved_url=self.template.render(self.rng),
            auth_token=self.auth_token,
        )


class LiteralParameterSource:
    def __init__(self, url: str, auth_token: str | None = None) -> None:
        self.url = url
        self.auth_token = auth_token

    def task_for(self, sequence_id: int) -> RequestTask:
        return RequestTask(
            sequence_id=sequence_id, resolved_url=self.url, auth_token=self.auth_token
        )


ParameterSource = TemplatedParameterSource | LiteralParameterSource


def build_parameter_source(
    config: RunConfig, rng: random.Random | None = None
) -> ParameterSource:
    """Pick the source matching ``config.target``: a template or a literal URL."""
    if isinstance(config.target, str):
        return LiteralParameterSource(config.target, config.auth_token)
    return TemplatedParameterSource(
        config.target,
        auth_token=config.auth_token,
        rng=rng or random.Random(config.seed),
    )
