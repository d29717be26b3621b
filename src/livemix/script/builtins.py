"""Built-in IO templates, written in the script language itself.

Every compiler starts with these definitions loaded, so scripts can use
``mp3input``, ``mp4input``, ``aoutput`` and ``xoutput`` without defining them.
A script may shadow a built-in by defining a template with the same name.
"""

MP3INPUT = """\
raw mp3input 1 filesrc name=src ! decodebin ! audioconvert ! audioresample ! proxysink name=audio_out
src location string $1
war
"""

MP4INPUT = """\
raw mp4input 2 filesrc name=src ! decodebin name=demux demux. ! videoconvert ! proxysink name=video_out demux. ! audioconvert ! audioresample ! proxysink name=audio_out
src location string $1
war
"""

AOUTPUT = """\
raw aoutput 1 proxysrc name=audio_in ! alsasink name=sink
war
"""

# Windowed sink; the window starts hidden at the given geometry
XOUTPUT = """\
raw xoutput 1 proxysrc name=video_in ! xvimagesink name=sink
raw gtktag string window
raw x int $1
raw y int $2
raw width int $3
raw height int $4
war
"""

BUILTIN_SCRIPT = "".join([MP3INPUT, MP4INPUT, AOUTPUT, XOUTPUT])

BUILTIN_NAMES = ("mp3input", "mp4input", "aoutput", "xoutput")
