"""Script snippets shared by the tests."""

FLIPPER = """\
raw flipper 2 proxysrc name=video_in ! videoflip name=flip ! proxysink name=video_out
flip method GstOrientation $1=0
war
"""

DEMO_SCRIPT = (
    FLIPPER
    + """\
// a movie flipped on its way to a window
new mp4input movie clip.mp4
new flipper f
new xoutput screen 0 0 640 480
new aoutput speakers
plug video_out movie video_in f
plug video_out f video_in screen
plug audio_out movie audio_in speakers
on pre act movie play start
on progress movie 0.25 act screen window show
on progress movie 0.5 wrap
act f prop flip method GstOrientation 180
act screen window move movie 0.5 0 0 0.75 100 50 linear mcos
parw
on callback movie end terminate
"""
)

WINDOW_SCRIPT = """\
new xoutput w 0 0 10 10
on pre wrap
act w window show
act w window move w 0.0 0 0 1.0 10 10 mcos mcos
parw
on callback w end terminate
"""
