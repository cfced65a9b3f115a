"""
Feature file loading.

Gherkin parsing is delegated to behave's parser; this module only maps the
behave model onto ``scenario_runner.bdd.model``.
"""

import glob
import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from behave.parser import ParserError, parse_feature

from ..core.exceptions import FeatureLoadError
from .model import (
    Background,
    DataTable,
    Examples,
    ExternalDataSource,
    Feature,
    Scenario,
    Step,
)

logger = logging.getLogger(__name__)


def parse_feature_text(text: str, filename: Optional[str] = None) -> Optional[Feature]:
    """Parse Gherkin text. Returns None for a file without a Feature."""
    try:
        parsed = parse_feature(text, filename=filename)
    except ParserError as e:
        raise FeatureLoadError(f"Could not parse {filename or 'feature text'}: {e}") from e

    if parsed is None:
        return None
    return _convert_feature(parsed, filename)


def load_feature_file(path: Union[str, Path]) -> Optional[Feature]:
    path = Path(path)
    if not path.exists():
        raise FeatureLoadError(f"Feature file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        return parse_feature_text(f.read(), filename=str(path))


def find_feature_files(paths: Iterable[Union[str, Path]]) -> List[Path]:
    """Expand files, directories and glob patterns into feature files, keeping first-seen order"""
    found: List[Path] = []

    for entry in paths:
        entry = str(entry)
        if glob.has_magic(entry):
            candidates = [Path(p) for p in sorted(glob.glob(entry, recursive=True))]
        else:
            candidates = [Path(entry)]

        for candidate in candidates:
            if candidate.is_dir():
                files = sorted(candidate.glob('**/*.feature'))
            elif candidate.exists():
                files = [candidate]
            else:
                raise FeatureLoadError(f"Feature path not found: {candidate}")

            for file in files:
                if file not in found:
                    found.append(file)

    return found


def load_features(paths: Iterable[Union[str, Path]]) -> List[Feature]:
    features = []
    for path in find_feature_files(paths):
        feature = load_feature_file(path)
        if feature is None:
            logger.warning(f"No feature found in {path}")
            continue
        features.append(feature)
    logger.info(f"Loaded {len(features)} feature(s)")
    return features


def _convert_feature(parsed, filename: Optional[str]) -> Feature:
    background = None
    if parsed.background is not None:
        background = Background(
            steps=[_convert_step(step) for step in parsed.background.steps],
            name=parsed.background.name or "",
        )

    scenarios = [_convert_scenario(scenario) for scenario in parsed.scenarios]

    # Rules (newer behave releases) contribute their scenarios in document order
    for rule in getattr(parsed, 'rules', None) or []:
        rule_tags = [str(tag) for tag in rule.tags]
        for scenario in rule.scenarios:
            converted = _convert_scenario(scenario)
            converted.tags = rule_tags + [t for t in converted.tags if t not in rule_tags]
            scenarios.append(converted)

    return Feature(
        name=parsed.name,
        scenarios=scenarios,
        tags=[str(tag) for tag in parsed.tags],
        background=background,
        description="\n".join(parsed.description or []),
        filename=filename,
    )


def _convert_scenario(parsed) -> Scenario:
    examples = None
    blocks = getattr(parsed, 'examples', None) or []
    if blocks:
        examples = _convert_examples(parsed.name, blocks)

    return Scenario(
        name=parsed.name,
        steps=[_convert_step(step) for step in parsed.steps],
        tags=[str(tag) for tag in parsed.tags],
        examples=examples,
    )


def _convert_examples(scenario_name: str, blocks) -> Examples:
    first = blocks[0]
    headers = list(first.table.headings) if first.table is not None else []
    rows: List[List[str]] = []
    source = _data_source_from_title(first.name)

    for block in blocks:
        if block.table is None:
            continue
        if list(block.table.headings) != headers:
            logger.warning(
                f"Examples '{block.name}' of '{scenario_name}' have different headers; block ignored"
            )
            continue
        rows.extend(list(row.cells) for row in block.table.rows)

    return Examples(headers=headers, rows=rows, source=source, name=first.name or "")


def _data_source_from_title(title: Optional[str]) -> Optional[ExternalDataSource]:
    """An Examples title holding a JSON object declares an external data source"""
    title = (title or "").strip()
    if not (title.startswith('{') and title.endswith('}')):
        return None

    try:
        data = json.loads(title)
    except json.JSONDecodeError:
        logger.warning(f"Examples title looks like a data source but is not valid JSON: {title}")
        return None

    if not isinstance(data, dict) or not (data.get('source') or data.get('file')):
        logger.warning(f"Examples data source needs a 'source': {title}")
        return None
    return ExternalDataSource.from_dict(data)


def _convert_step(parsed) -> Step:
    table = None
    if parsed.table is not None:
        table = DataTable.from_headers(
            list(parsed.table.headings),
            [list(row.cells) for row in parsed.table.rows],
        )

    return Step(
        keyword=parsed.keyword.strip(),
        text=parsed.name,
        data_table=table,
        doc_string=parsed.text,
    )
