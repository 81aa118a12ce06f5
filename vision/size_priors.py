"""Reference real-world widths, in meters, for classes the detectors report.

Keys are normalized class names (lowercase, underscores). Unknown classes use
``DEFAULT_REFERENCE_SIZE``.
"""

from __future__ import annotations


DEFAULT_REFERENCE_SIZE = 0.5

REFERENCE_SIZES: dict[str, float] = {
    # People and persons
    "person": 0.5,
    "man": 0.5,
    "woman": 0.5,
    "child": 0.35,
    "baby": 0.25,
    "teenager": 0.45,
    "adult": 0.5,
    "elderly": 0.48,
    "pedestrian": 0.5,
    "crowd": 3.0,
    "human": 0.5,
    "person_right_hand": 0.15,
    "person_leg": 0.3,

    # Transportation - Vehicles
    "bicycle": 0.6,
    "bike": 0.6,
    "car": 1.8,
    "automobile": 1.8,
    "sedan": 1.8,
    "suv": 1.9,
    "truck": 2.5,
    "pickup_truck": 2.0,
    "van": 2.0,
    "minivan": 1.9,
    "bus": 2.6,
    "train": 3.0,
    "motorcycle": 0.8,
    "scooter": 0.5,
    "moped": 0.7,
    "skateboard": 0.8,
    "surfboard": 2.0,
    "skis": 1.8,
    "snowboard": 1.5,
    "airplane": 20.0,
    "boat": 3.0,
    "ambulance": 2.2,
    "fire_truck": 2.5,
    "police_car": 1.9,
    "taxi": 1.8,
    "delivery_truck": 2.3,
    "tractor": 2.0,
    "trailer": 2.5,
    "golf_cart": 1.4,
    "vehicle": 1.8,

    # Street objects
    "traffic_light": 0.3,
    "fire_hydrant": 0.5,
    "stop_sign": 0.6,
    "parking_meter": 0.5,
    "bench": 1.2,

    # Furniture
    "chair": 0.5,
    "armchair": 0.7,
    "stool": 0.4,
    "office_chair": 0.65,
    "rocking_chair": 0.7,
    "bean_bag": 0.8,
    "bench_outdoor": 1.5,
    "sofa": 1.8,
    "couch": 1.8,
    "loveseat": 1.4,
    "futon": 1.5,
    "sectional": 2.5,
    "chaise_lounge": 1.6,
    "ottoman": 0.5,
    "table": 1.5,
    "coffee_table": 0.9,
    "end_table": 0.5,
    "side_table": 0.5,
    "dining_table": 1.5,
    "kitchen_table": 1.4,
    "desk": 1.4,
    "computer_desk": 1.2,
    "standing_desk": 1.4,
    "console_table": 1.0,
    "vanity": 1.0,
    "dresser": 1.2,
    "chest_of_drawers": 1.0,
    "nightstand": 0.5,
    "bookshelf": 0.9,
    "bookcase": 1.0,
    "cabinet": 0.8,
    "file_cabinet": 0.5,
    "credenza": 1.5,
    "hutch": 1.2,
    "entertainment_center": 1.8,
    "tv_stand": 1.2,
    "bed": 1.5,
    "twin_bed": 1.0,
    "full_bed": 1.4,
    "queen_bed": 1.6,
    "king_bed": 2.0,
    "bunk_bed": 1.5,
    "cradle": 0.8,
    "crib": 0.8,
    "daybed": 0.9,
    "hammock": 1.5,
    "folding_chair": 0.45,
    "folding_table": 0.8,
    "bean_bag_chair": 0.8,

    # Office equipment
    "laptop": 0.35,
    "computer": 0.4,
    "desktop": 0.45,
    "server": 0.6,
    "pc": 0.4,
    "workstation": 0.9,
    "tablet": 0.2,
    "e_reader": 0.18,
    "keyboard": 0.4,
    "mouse": 0.07,
    "trackpad": 0.12,
    "monitor": 0.55,
    "display": 0.5,
    "screen": 1.8,
    "lcd": 0.5,
    "led_screen": 0.5,
    "tv": 1.0,
    "television": 1.0,
    "hdtv": 1.0,
    "smarttv": 1.2,
    "projector": 0.3,
    "projector_screen": 2.0,
    "phone": 0.1,
    "telephone": 0.15,
    "landline": 0.15,
    "smartphone": 0.08,
    "cell_phone": 0.07,
    "mobile": 0.07,
    "iphone": 0.07,
    "android": 0.07,
    "headphones": 0.18,
    "headset": 0.2,
    "earbuds": 0.05,
    "microphone": 0.05,
    "speaker": 0.25,
    "stereo": 0.4,
    "soundbar": 0.9,
    "webcam": 0.05,
    "camera": 0.1,
    "video_camera": 0.15,
    "dslr": 0.15,
    "digital_camera": 0.12,
    "printer": 0.5,
    "scanner": 0.4,
    "copier": 0.7,
    "fax": 0.4,
    "shredder": 0.3,
    "calculator": 0.15,
    "stapler": 0.08,
    "tape_dispenser": 0.1,
    "hole_punch": 0.12,
    "paper_cutter": 0.3,
    "binder": 0.28,
    "clipboard": 0.23,
    "whiteboard": 1.2,
    "blackboard": 1.2,
    "bulletin_board": 0.9,
    "flip_chart": 0.7,
    "easel": 0.6,

    # Conference room items
    "podium": 0.8,
    "lectern": 0.7,
    "conference_table": 2.4,
    "meeting_table": 2.0,
    "boardroom_table": 3.0,
    "conference_chair": 0.6,
    "av_cart": 0.6,
    "conference_phone": 0.2,
    "speakerphone": 0.2,
    "video_conferencing": 0.8,
    "telepresence": 1.0,
    "remote": 0.05,
    "remote_control": 0.05,
    "laser_pointer": 0.02,
    "presentation_clicker": 0.05,
    "marker": 0.01,
    "dry_erase_marker": 0.01,
    "chalk": 0.01,
    "eraser": 0.1,
    "notebook": 0.25,
    "legal_pad": 0.22,
    "notepad": 0.15,
    "pen": 0.01,
    "pencil": 0.01,
    "folder": 0.25,
    "document": 0.21,
    "paper": 0.21,
    "water_pitcher": 0.2,
    "water_glasses": 0.08,
    "coffee_carafe": 0.25,

    # Electronics
    "router": 0.2,
    "modem": 0.2,
    "hub": 0.15,
    "switch": 0.2,
    "network_equipment": 0.3,
    "cable_box": 0.3,
    "streaming_device": 0.1,
    "game_console": 0.3,
    "playstation": 0.3,
    "xbox": 0.3,
    "nintendo": 0.25,
    "wii": 0.2,
    "controller": 0.15,
    "power_strip": 0.3,
    "extension_cord": 0.3,
    "adapter": 0.1,
    "charger": 0.1,
    "usb_drive": 0.05,
    "external_drive": 0.15,
    "hard_drive": 0.15,
    "ssd": 0.1,

    # Appliances
    "refrigerator": 0.8,
    "fridge": 0.8,
    "freezer": 0.75,
    "microwave": 0.5,
    "oven": 0.6,
    "stove": 0.6,
    "range": 0.75,
    "dishwasher": 0.6,
    "washing_machine": 0.65,
    "washer": 0.65,
    "dryer": 0.65,
    "toaster": 0.3,
    "toaster_oven": 0.4,
    "blender": 0.2,
    "mixer": 0.25,
    "food_processor": 0.25,
    "coffee_maker": 0.3,
    "espresso_machine": 0.35,
    "kettle": 0.25,
    "electric_kettle": 0.2,
    "rice_cooker": 0.3,
    "slow_cooker": 0.35,
    "pressure_cooker": 0.3,
    "instant_pot": 0.3,
    "air_fryer": 0.3,
    "water_cooler": 0.5,
    "air_conditioner": 0.7,
    "heater": 0.5,
    "fan": 0.45,
    "ceiling_fan": 1.2,
    "air_purifier": 0.4,
    "humidifier": 0.3,
    "dehumidifier": 0.4,
    "vacuum": 0.4,
    "robot_vacuum": 0.3,
    "hair_drier": 0.2,

    # COCO standard classes
    "backpack": 0.4,
    "handbag": 0.3,
    "tie": 0.1,
    "suitcase": 0.7,
    "frisbee": 0.25,
    "sports_ball": 0.2,
    "kite": 0.5,
    "baseball_bat": 0.9,
    "baseball_glove": 0.25,
    "tennis_racket": 0.7,
    "bottle": 0.1,
    "wine_glass": 0.08,
    "cup": 0.1,
    "fork": 0.02,
    "knife": 0.02,
    "spoon": 0.02,
    "bowl": 0.2,
    "banana": 0.2,
    "apple": 0.08,
    "sandwich": 0.2,
    "orange": 0.08,
    "broccoli": 0.15,
    "carrot": 0.15,
    "hot_dog": 0.15,
    "pizza": 0.35,
    "donut": 0.1,
    "cake": 0.25,
    "potted_plant": 0.3,

    # Common COCO animal classes
    "bird": 0.2,
    "cat": 0.4,
    "dog": 0.6,
    "horse": 2.0,
    "sheep": 1.2,
    "cow": 2.0,
    "elephant": 3.0,
    "bear": 2.0,
    "zebra": 2.0,
    "giraffe": 1.5,

    # Additional COCO classes
    "umbrella": 1.0,
    "teddy_bear": 0.3,
    "scissors": 0.15,
    "vase": 0.2,

    # Architectural features
    "door": 0.9,
    "doorway": 0.9,
    "entrance": 1.2,
    "steps": 1.0,
    "stairs": 1.0,
    "staircase": 1.2,
}


def reference_size(key: str) -> float:
    """Return the reference width for a normalized class key."""

    return REFERENCE_SIZES.get(key, DEFAULT_REFERENCE_SIZE)
