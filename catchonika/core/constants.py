"""Timing resolution, MIDI ranges, and capture defaults."""

# Ticks per quarter note used for every export (T128 = one beat)
PPQ = 128

DEFAULT_BPM = 120.0
# The SMF tempo field is 24 bits of microseconds per beat, so ~3.58 BPM is the floor
MIN_BPM = 4.0
MAX_BPM = 999.0
TIME_SIGNATURE = (4, 4)

# Rolling buffer retention in minutes
DEFAULT_BUFFER_MINUTES = 30

# Buffer sweep interval in seconds
SWEEP_INTERVAL = 10.0

# Input port rescan interval in seconds
RECONNECT_INTERVAL = 3.0

# "Save last N seconds" default window
DEFAULT_LAST_SECONDS = 60

# Sustain pedal (CC64): value >= 64 means held
SUSTAIN_CONTROLLER = 64
SUSTAIN_THRESHOLD = 64

MIDI_CHANNELS = 16  # 1..16
MIDI_NOTES = 128    # 0..127

PITCH_CLASSES = ("C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B")

# Encoder velocity scale (1..100)
VELOCITY_MIN = 1
VELOCITY_MAX = 100

FILE_PREFIX = "catchonika"
TRACK_NAME_PREFIX = "Catchonika"
