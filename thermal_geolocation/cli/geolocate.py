"""Geolocation and segment calibration CLI commands."""

import json
from enum import Enum
from pathlib import Path
from typing import List, Optional

import typer
import yaml

from thermal_geolocation.aggregation import ObjectStore, summarize_objects
from thermal_geolocation.calibration_history import SegmentCalibrationEntry, SegmentCalibrationHistory
from thermal_geolocation.cli.main import app
from thermal_geolocation.config import GeolocationConfig, get_default_config
from thermal_geolocation.scenario import Scenario, aggregate_tracks, load_scenario
from thermal_geolocation.segment_calibration import (
    FlightSegment,
    PolynomialSurvey,
    SegmentAltitudeCalibrator,
)


class OutputFormat(str, Enum):
    """Output format options."""

    HUMAN = "human"
    JSON = "json"


def _load_inputs(scenario_path: Path, config_path: Optional[Path]) -> tuple:
    try:
        config = GeolocationConfig.from_yaml(str(config_path)) if config_path else get_default_config()
        scenario = load_scenario(str(scenario_path))
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    return config, scenario


@app.command("locate")
def locate_command(
    scenario_path: Path = typer.Argument(..., help="Scenario YAML file"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration YAML file"),
    output_format: OutputFormat = typer.Option(OutputFormat.HUMAN, "--format", "-f", help="Output format"),
) -> None:
    """
    Locate every observation in a scenario and summarise each tracked object.

    Example:
        thermal-geo locate flight.yaml
        thermal-geo locate flight.yaml --format json
    """
    config, scenario = _load_inputs(scenario_path, config_path)
    try:
        _, store = aggregate_tracks(config, scenario)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if output_format == OutputFormat.JSON:
        typer.echo(json.dumps(_locate_json(scenario, store), indent=2))
    else:
        typer.echo(_locate_human(scenario, store))


@app.command("calibrate")
def calibrate_command(
    scenario_path: Path = typer.Argument(..., help="Scenario YAML file"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration YAML file"),
    history_path: Optional[Path] = typer.Option(
        None, "--history", help="Append results to this segment calibration history file"
    ),
    survey: bool = typer.Option(False, "--survey", help="Also report the polynomial bias survey"),
    output_format: OutputFormat = typer.Option(OutputFormat.HUMAN, "--format", "-f", help="Output format"),
) -> None:
    """
    Find the altitude correction of each flight segment.

    Example:
        thermal-geo calibrate flight.yaml
        thermal-geo calibrate flight.yaml --history results.yaml --format json
    """
    config, scenario = _load_inputs(scenario_path, config_path)
    try:
        aggregator, store = aggregate_tracks(config, scenario)
        calibrator = SegmentAltitudeCalibrator(aggregator, config.calibration)
        segments = scenario.build_segments()
        surveys = {}
        if survey:
            for segment in segments:
                surveys[segment.segment_id] = calibrator.survey_polynomial(segment, scenario.poses, store)
        calibrator.calibrate_segments(segments, scenario.poses, store)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    if history_path is not None:
        history = SegmentCalibrationHistory(str(history_path))
        for segment in segments:
            history.add_entry(SegmentCalibrationEntry.from_segment(scenario.name, segment))
        history.save()

    if output_format == OutputFormat.JSON:
        output = {
            "flight": scenario.name,
            "segments": [s.to_dict() for s in segments],
        }
        if survey:
            output["surveys"] = {
                str(segment_id): None if result is None else {
                    "suggested_bias_m": result.suggested_bias_m,
                    "predicted_error_m": result.predicted_error_m,
                }
                for segment_id, result in surveys.items()
            }
        typer.echo(json.dumps(output, indent=2))
    else:
        typer.echo(_calibrate_human(scenario, segments, surveys))


def _locate_json(scenario: Scenario, store: ObjectStore) -> dict:
    objects = []
    for obj in store.values():
        entry = obj.summary()
        entry["estimates"] = [
            {
                "observation_id": c.observation.observation_id,
                "step_id": c.observation.step_id,
                "height_status": c.observation.height_status.label,
                "northing": None if c.estimate is None else round(float(c.estimate.northing), 3),
                "easting": None if c.estimate is None else round(float(c.estimate.easting), 3),
                "elevation": None if c.estimate is None else round(float(c.estimate.elevation), 3),
                "confidence": None if c.estimate is None else round(float(c.estimate.confidence), 4),
            }
            for c in obj.claims
        ]
        objects.append(entry)
    summary = summarize_objects(store.values())
    return {
        "flight": scenario.name,
        "objects": objects,
        "sum_location_error_m": round(float(summary.sum_location_error_m), 4),
        "sum_height_error_m": round(float(summary.sum_height_error_m), 4),
    }


def _locate_human(scenario: Scenario, store: ObjectStore) -> str:
    lines = [
        "=" * 60,
        f"{scenario.name.upper()} - Object Locations",
        "=" * 60,
    ]
    for obj in store.values():
        lines += [
            "",
            f"Object {obj.object_id}{' (significant)' if obj.significant else ''}:",
            f"  Located:          {obj.num_located}/{obj.num_observations} observations",
            f"  Centroid (N, E):  ({obj.centroid_northing:.2f}, {obj.centroid_easting:.2f})",
            f"  Elevation:        {obj.centroid_elevation:.2f} m",
            f"  Height:           {obj.mean_height_m:.2f} m "
            f"(min {obj.min_height_m:.2f}, max {obj.max_height_m:.2f})",
            f"  Location error:   {obj.sum_location_error_m:.3f} m (sum)",
            f"  Height error:     {obj.sum_height_error_m:.3f} m (sum)",
        ]
    summary = summarize_objects(store.values())
    lines += [
        "",
        f"Total location error: {summary.sum_location_error_m:.3f} m over {summary.num_objects} objects",
        "=" * 60,
    ]
    return "\n".join(lines)


def _calibrate_human(
    scenario: Scenario,
    segments: List[FlightSegment],
    surveys: dict,
) -> str:
    lines = [
        "=" * 60,
        f"{scenario.name.upper()} - Segment Altitude Calibration",
        "=" * 60,
    ]
    if not segments:
        lines += ["", "No segments long enough to calibrate."]
    for segment in segments:
        lines += [
            "",
            f"Segment {segment.name} (steps {segment.min_step}-{segment.max_step}):",
            f"  Significant objects: {segment.num_significant_objects}",
            f"  Altitude bias:       {segment.altitude_bias_m:+.2f} m",
            f"  Location error:      {segment.original_sum_location_error_m:.3f} m -> "
            f"{segment.best_sum_location_error_m:.3f} m",
            f"  Height error:        {segment.original_sum_height_error_m:.3f} m -> "
            f"{segment.best_sum_height_error_m:.3f} m",
        ]
        survey: Optional[PolynomialSurvey] = surveys.get(segment.segment_id)
        if survey is not None:
            lines.append(
                f"  Polynomial survey:   {survey.suggested_bias_m:+.1f} m "
                f"(predicted error {survey.predicted_error_m:.3f} m)"
            )
    lines += ["", "=" * 60]
    return "\n".join(lines)
