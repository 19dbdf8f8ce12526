# Default catalog source (netease through the meting API)
DEFAULT_SOURCES = [
    {
        'name': 'default-320k',
        'search_url': 'https://api.injahow.cn/meting/api?server=netease&type=search&keywords=',
        'play_url': 'https://api.injahow.cn/meting/api?server=netease&type=url&id=&quality=320',
        'lyric_url': 'https://api.injahow.cn/meting/api?server=netease&type=lyric&id=',
    }
]

# Stream quality suffix appended after the song id
QUALITY_SUFFIX = '&quality=320'

# Engine timing (seconds)
SAMPLE_INTERVAL = 0.1
SLEEP_TICK = 1.0

# Playback speed bounds accepted by the engine
MIN_SPEED = 0.25
MAX_SPEED = 4.0
DEFAULT_SPEED = 1.0

# Persistence
HISTORY_LIMIT = 200

# Local files
LOCAL_ARTIST = 'Local audio'
LOCAL_ALBUM = 'Local file'

# Network
REQUEST_TIMEOUT = 10
OPEN_TIMEOUT = 10

# Route change reasons delivered by the OS audio session
ROUTE_OLD_DEVICE_UNAVAILABLE = 'old_device_unavailable'

# Now playing display
PROGRESS_BAR_LENGTH = 20
UNKNOWN_TITLE = 'Unknown'
