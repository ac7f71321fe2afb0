# Configuration YT-DLP
YTDL_OPTIONS = {
    'format': 'bestaudio/best',
    'quiet': True,
    'no_warnings': True,
    'skip_download': True,
    'noplaylist': True,
    'nocheckcertificate': True,
    'retries': float('inf'),
    'fragment_retries': float('inf'),
    'cachedir': False,
    'no_color': True,
}

# Playlist / search expansion only needs ids and titles
YTDL_FLAT_OPTIONS = {
    'extract_flat': 'in_playlist',
    'noplaylist': False,
}

SEARCH_PREFIX = 'ytsearch'
WATCH_URL = 'https://www.youtube.com/watch?v={id}'

RESOLVE_TIMEOUT = 45
BATCH_RESOLVE_TIMEOUT = 90

PLAYLIST_DEFAULT_LIMIT = 25
PLAYLIST_MAX_LIMIT = 50

USER_AGENT = (
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36'
)

DEFAULT_HTTP_HEADERS = {
    'User-Agent': USER_AGENT,
    'Accept': '*/*',
    'Accept-Language': 'en-US,en;q=0.9',
    'Origin': 'https://www.youtube.com',
    'Referer': 'https://www.youtube.com/',
}

# Configuration FFMPEG (source side: reconnect, fast start, bounded timeouts)
FFMPEG_BEFORE_OPTIONS = (
    '-hide_banner '
    '-reconnect 1 -reconnect_streamed 1 -reconnect_on_network_error 1 -reconnect_delay_max 10 '
    '-fflags +nobuffer -flags low_delay -analyzeduration 0 -probesize 32k '
    '-rw_timeout 15000000 -timeout 15000000'
)

# Output side. FFmpegOpusAudio already adds -f opus -c:a libopus -ar 48000 -ac 2 -b:a
FFMPEG_OPTIONS = '-vn -loglevel info'
FFMPEG_BITRATE = 128

VOLUME_MIN = 0
VOLUME_MAX = 1000
VOLUME_DEFAULT = 100
# Exponent used for logarithmic volume scaling (matches a 6 dB per doubling curve)
VOLUME_LOG_EXPONENT = 1.660964

QUEUE_PREVIEW_SIZE = 10
PLAYLIST_PREVIEW_SIZE = 5
UP_NEXT_LOG_SIZE = 3

UPDATE_MARK_FILE = 'yt-dlp.last'
ONE_DAY_SECONDS = 24 * 3600

HEALTH_RESPONSE = "Discord music bot is running"

# Couleurs des Embeds Discord
COLORS = {
    'SUCCESS': 0x2ecc71,  # Vert
    'ERROR': 0xe74c3c,    # Rouge
    'WARNING': 0xf1c40f,  # Jaune
    'INFO': 0x3498db      # Bleu
}

# Messages du bot
MESSAGES = {
    'SONG_ADDED': "➕ Added: **{title}**",
    'PLAYLIST_ADDED': "📚 Added **{count}** tracks from playlist/search",
    'PLAYLIST_MORE': "…and {count} more",
    'PLAYLIST_EMPTY': "❌ Nothing found in that playlist or search",
    'PLAYLIST_TITLE': "Playlist",
    'SEARCH_TITLE': "Search results",
    'QUERY_REQUIRED': "❌ Give a song name or a URL",
    'NOW_PLAYING': "🎶 Now playing: **{title}** requested by {requester} | 🔊 {volume}%",
    'NOW_PLAYING_TITLE': "Now Playing",
    'NOW_PLAYING_BODY': "**{title}**\nRequested by: {requester}",
    'NOTHING_PLAYING': "ℹ️ Nothing is playing right now",
    'TRACK_SKIPPED_FAILED': "⚠️ Skipped, could not play: **{title}**",
    'RECONNECTING': "🔁 Stream dropped, trying to reconnect…",
    'QUEUE_EMPTY': "⏹️ Queue is empty",
    'QUEUE_EMPTY_LIST': "📭 Queue is empty",
    'QUEUE_TITLE': "🎼 Queue ({count}) | Loop: **{loop}**",
    'QUEUE_MORE': "…and {count} more",
    'SKIPPED': "⏭️ Skipped the current track",
    'STOPPED': "🛑 Stopped and cleared the queue",
    'PAUSED': "⏸️ Paused",
    'RESUMED': "▶️ Resumed",
    'NOT_PAUSED': "ℹ️ Playback is not paused",
    'REMOVED': "🗑️ Removed #{index}: **{title}**",
    'REMOVE_EMPTY': "📭 Queue is empty, nothing to remove",
    'INVALID_INDEX': "❌ Invalid queue position",
    'SHUFFLED': "🔀 Queue shuffled",
    'SHUFFLE_TOO_SMALL': "ℹ️ Fewer than two tracks queued, nothing to shuffle",
    'LOOP_SET': "🔁 Loop set to **{mode}**",
    'INVALID_LOOP': "❌ Loop mode must be one of: off, track, queue",
    'VOLUME_SET': "🔊 Volume set to **{volume}%**",
    'INVALID_VOLUME': "❌ Volume must be a whole number between 0 and 1000",
    'VOICE_CHANNEL_REQUIRED': "❌ Join a voice channel first",
    'SAME_VOICE_CHANNEL_REQUIRED': "❌ Join the same voice channel as the bot first",
    'UNKNOWN_COMMAND': "❌ Unknown command: {name}",
    'UPDATE_RUNNING': "⏳ An update is already running",
    'UPDATE_DONE': "✅ Resolver updated",
    'UPDATE_FAILED': "❌ Resolver update failed",
    'UPDATE_UNAVAILABLE': "❌ Resolver updates are not available",
    'PING': "> WebSocket: `{ws} ms`\n> RTT: `{rtt} ms`",
    'COMMAND_FAILED': "❌ Command failed: {error}",
}

LOOP_LABELS = {
    'off': "Off",
    'track': "Current track",
    'queue': "Whole queue",
}
