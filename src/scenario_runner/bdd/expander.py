import logging
import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ..core.exceptions import DataSourceError
from .model import (
    Examples,
    ExternalDataSource,
    Feature,
    Scenario,
    ScenarioInstance,
    Step,
)

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r'<([^<>]+)>')

DataSourceResolver = Callable[[ExternalDataSource], Tuple[List[str], List[List[str]]]]


def used_columns(template: Scenario, headers: Sequence[str]) -> List[str]:
    """Headers referenced as <placeholder> in the scenario name or step texts, in header order"""
    referenced = set(PLACEHOLDER.findall(template.name))
    for step in template.steps:
        referenced.update(PLACEHOLDER.findall(step.text))
    return [header for header in headers if header in referenced]


class ExamplesExpander:
    """
    Expands a scenario template into concrete scenario instances.

    A template without examples yields exactly one instance. A template with
    examples yields one instance per row, with every ``<header>`` in the name
    and step texts replaced by the row's value.
    """

    def __init__(self, data_source_resolver: Optional[DataSourceResolver] = None):
        self.data_source_resolver = data_source_resolver

    def expand(self, template: Scenario, feature: Optional[Feature] = None) -> List[ScenarioInstance]:
        feature_name = feature.name if feature else ""
        feature_tags = list(feature.tags) if feature else []
        background = list(feature.background.steps) if feature and feature.background else []

        if template.examples is None:
            return [ScenarioInstance(
                feature_name=feature_name,
                template_name=template.name,
                name=template.name,
                steps=list(template.steps),
                tags=_merge_tags(feature_tags, template.tags),
                background=background,
            )]

        headers, rows = self.load_examples(template.examples)
        if not rows:
            logger.warning(f"No data rows for scenario: {template.name}")
            return []

        columns = used_columns(template, headers)
        logger.info(
            f"Data-driven scenario '{template.name}' uses {len(columns)} of {len(headers)} "
            f"columns: {', '.join(columns)}"
        )

        instances = []
        total = len(rows)
        for iteration, row in enumerate(rows, start=1):
            values = self._row_values(headers, row)
            name = self.interpolate(template.name, values)
            if total > 1:
                name = f"{name}_Iteration-{iteration}"

            instances.append(ScenarioInstance(
                feature_name=feature_name,
                template_name=template.name,
                name=name,
                steps=[self._interpolate_step(step, values) for step in template.steps],
                tags=_merge_tags(feature_tags, template.tags),
                background=background,
                iteration=iteration,
                total_iterations=total,
                example_data={column: values[column] for column in columns},
                used_columns=columns,
            ))

        return instances

    def load_examples(self, examples: Examples) -> Tuple[List[str], List[List[str]]]:
        """Inline table, or the external source when one is declared and a resolver is available"""
        if examples.source is None:
            return list(examples.headers), [list(row) for row in examples.rows]

        if self.data_source_resolver is None:
            logger.warning(
                f"Examples declare external source '{examples.source.source}' but no data "
                f"source resolver is configured; using inline table"
            )
            return list(examples.headers), [list(row) for row in examples.rows]

        try:
            headers, rows = self.data_source_resolver(examples.source)
        except DataSourceError as e:
            logger.error(f"Failed to load external data: {e}")
            return list(examples.headers), [list(row) for row in examples.rows]

        if not rows:
            logger.warning(f"No data loaded from external source: {examples.source.source}")
        return list(headers), [list(row) for row in rows]

    def _row_values(self, headers: Sequence[str], row: Sequence[str]) -> Dict[str, str]:
        values = {}
        for index, header in enumerate(headers):
            value = row[index] if index < len(row) else ''
            value = '' if value is None else str(value)
            if value.lower() == header.lower():
                logger.warning(
                    f"Column '{header}' has value '{value}' which matches the column name - "
                    f"possible data loading issue. Using empty string instead."
                )
                value = ''
            values[header] = value
        return values

    def interpolate(self, text: str, values: Dict[str, str]) -> str:
        def replace(match):
            header = match.group(1)
            return values[header] if header in values else match.group(0)

        return PLACEHOLDER.sub(replace, text)

    def _interpolate_step(self, step: Step, values: Dict[str, str]) -> Step:
        return Step(
            keyword=step.keyword,
            text=self.interpolate(step.text, values),
            data_table=step.data_table,
            doc_string=step.doc_string,
        )


def _merge_tags(feature_tags: Sequence[str], scenario_tags: Sequence[str]) -> List[str]:
    merged = []
    for tag in list(feature_tags) + list(scenario_tags):
        if tag not in merged:
            merged.append(tag)
    return merged
