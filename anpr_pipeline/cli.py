import json
import click
import yaml
from tqdm import tqdm

from .config.config_loader import ConfigLoader
from .loaders.precomputed import DataLoadError, PrecomputedDetections, PrecomputedRecognitions
from .logging_config import setup_logging
from .pipeline import PlatePipeline
from .validation.validator import PlateValidator


def _load_config(config_path):
    loader = ConfigLoader(config_path)
    try:
        loader.load()
        return loader.update_from_env()
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise click.ClickException(f"Could not load config: {e}")


@click.group()
def cli():
    """License plate frame-to-event pipeline"""
    pass


@cli.command()
@click.option('--detections', '-d', type=click.Path(exists=True), required=True,
              help='Precomputed detection JSON')
@click.option('--recognitions', '-r', type=click.Path(exists=True), required=True,
              help='Precomputed recognition JSON')
@click.option('--config', '-c', type=click.Path(exists=True),
              help='Path to configuration file')
@click.option('--direction', type=click.Choice(['ENTRY', 'EXIT'], case_sensitive=False),
              help='Override the gate direction')
@click.option('--gate', '-g', help='Override the gate name')
@click.option('--output', '-o', type=click.Path(), help='Write events to this JSON file')
def run(detections, recognitions, config, direction, gate, output):
    """Replay precomputed detections through the pipeline"""
    cfg = _load_config(config)
    if direction:
        cfg['pipeline']['direction'] = direction.upper()
    if gate:
        cfg['pipeline']['gate'] = gate
    package_logger = setup_logging(cfg)

    detection_source = PrecomputedDetections()
    recognition_source = PrecomputedRecognitions()
    try:
        detection_source.load(detections)
        recognition_source.load(recognitions)
    except DataLoadError as e:
        raise click.ClickException(str(e))

    pipeline = PlatePipeline.from_config(
        cfg, crop_provider=recognition_source.find_crop, logger=package_logger
    )

    events = []
    suppressed = 0
    frame_times = detection_source.get_frame_times()
    for time_ms in tqdm(frame_times, desc='Frames'):
        result = pipeline.process_frame(detection_source.get_detections(time_ms), time_ms)
        events.extend(result.events)
        suppressed += len(result.suppressed)

    final = pipeline.flush(frame_times[-1] if frame_times else 0)
    events.extend(final.events)
    suppressed += len(final.suppressed)

    payload = [event.to_dict() for event in events]
    if output:
        with open(output, 'w', encoding='utf-8') as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        click.echo(f"Wrote {len(events)} events to {output}")
    else:
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))

    click.echo(f"\nEvents: {len(events)}, duplicates suppressed: {suppressed}")


@cli.command()
@click.argument('plate')
@click.option('--no-fallback', is_flag=True, help='Only run the strict format check')
def validate(plate, no_fallback):
    """Validate a single plate text"""
    validator = PlateValidator(fallback_enabled=not no_fallback)
    result = validator.validate_plate(plate)
    click.echo(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))
    if not result.valid:
        raise SystemExit(1)


if __name__ == '__main__':
    cli()
