from .model import (
    Background,
    DataTable,
    Examples,
    ExternalDataSource,
    Feature,
    Scenario,
    ScenarioInstance,
    Step,
)
from .expander import ExamplesExpander, used_columns
from .data_sources import FileDataSourceResolver, create_filter
from .parser import load_features, load_feature_file, parse_feature_text

__all__ = [
    "Background",
    "DataTable",
    "Examples",
    "ExternalDataSource",
    "Feature",
    "Scenario",
    "ScenarioInstance",
    "Step",
    "ExamplesExpander",
    "used_columns",
    "FileDataSourceResolver",
    "create_filter",
    "load_features",
    "load_feature_file",
    "parse_feature_text",
]
