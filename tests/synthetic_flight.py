"""Synthetic survey flight used by the calibration and CLI tests.

The platform flies north along easting 0 at a true altitude of 100m over
flat terrain at 40m, camera heading north and 45 degrees down. Two hot
objects sit on the ground ahead of the flight line. Observations are made by
projecting each object through the true pose; the poses handed to the code
under test report ``altitude_error_m`` less than the truth.
"""

from thermal_geolocation.camera_config import get_camera_model
from thermal_geolocation.observations import ImageObservation
from thermal_geolocation.pose import PlatformPose, PoseTable
from thermal_geolocation.ray_projection import CameraRayProjector, world_point
from thermal_geolocation.terrain import FlatTerrain

TERRAIN_HEIGHT = 40.0
TRUE_ALTITUDE = 100.0
DEPRESSION_DEG = 45.0
HEADING_DEG = 0.0
FLIGHT_NORTHINGS = [float(n) for n in range(-40, 55, 5)]
OBJECT_POSITIONS = [(80.0, 10.0), (90.0, -15.0)]
BOX_SIZE = 5
HOT_PIXELS = 20


def make_poses(altitude_error_m=1.0, leg_id=1):
    return PoseTable(
        PlatformPose(
            step_id=step_id,
            northing=northing,
            easting=0.0,
            altitude=TRUE_ALTITUDE - altitude_error_m,
            heading_deg=HEADING_DEG,
            depression_deg=DEPRESSION_DEG,
            leg_id=leg_id,
        )
        for step_id, northing in enumerate(FLIGHT_NORTHINGS, start=1)
    )


def make_tracks(integer_boxes=False):
    """One list of observations per object, seen from every pose that frames it."""
    camera = get_camera_model()
    projector = CameraRayProjector(camera)
    tracks = []
    observation_id = 1
    for obj_northing, obj_easting in OBJECT_POSITIONS:
        target = world_point(obj_northing, obj_easting, TERRAIN_HEIGHT)
        observations = []
        for step_id, northing in enumerate(FLIGHT_NORTHINGS, start=1):
            origin = world_point(northing, 0.0, TRUE_ALTITUDE)
            pixel = projector.world_to_pixel(target, origin, HEADING_DEG, DEPRESSION_DEG)
            if pixel is None or not camera.contains_pixel(*pixel):
                continue
            px, py = pixel
            box_x = px - BOX_SIZE / 2.0
            box_y = py - BOX_SIZE / 2.0
            if integer_boxes:
                box_x, box_y = int(round(box_x)), int(round(box_y))
            observations.append(
                ImageObservation(
                    observation_id=observation_id,
                    step_id=step_id,
                    box_x=box_x,
                    box_y=box_y,
                    box_width=BOX_SIZE,
                    box_height=BOX_SIZE,
                    num_hot_pixels=HOT_PIXELS,
                    min_heat=120,
                    max_heat=200,
                )
            )
            observation_id += 1
        tracks.append(observations)
    return tracks


def terrain():
    return FlatTerrain(TERRAIN_HEIGHT)


def scenario_dict(altitude_error_m=1.0):
    """The synthetic flight in scenario-file form."""
    return {
        'flight': 'synthetic',
        'terrain': {'type': 'flat', 'height': TERRAIN_HEIGHT},
        'poses': [p.to_dict() for p in make_poses(altitude_error_m).values()],
        'tracks': [
            {
                'observations': [
                    {
                        'observation_id': o.observation_id,
                        'step_id': o.step_id,
                        'box_x': o.box_x,
                        'box_y': o.box_y,
                        'box_width': o.box_width,
                        'box_height': o.box_height,
                        'num_hot_pixels': o.num_hot_pixels,
                    }
                    for o in track
                ]
            }
            for track in make_tracks(integer_boxes=True)
        ],
    }
