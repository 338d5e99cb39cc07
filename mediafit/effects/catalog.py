"""
Built-in effect catalog.

Fixed effects map a name straight to a filter-graph fragment. Parametric
effects take a scalar value, validate it, and render it into the fragment.
Complex fragments are written as ``video_chain;audio_chain``.
"""

import random
from typing import Callable, Dict, List, Optional

from ..models import EffectType, EffectValue
from .registry import EffectDefinition, EffectRegistry, fixed_effect

# =============================================================================
# FIXED AUDIO EFFECTS
# =============================================================================
# asetrate-based effects resample first so the rate maths holds for any input

AUDIO_EFFECTS: Dict[str, str] = {
    "chipmunk": "aresample=44100,asetrate=44100*1.5,aresample=44100,atempo=0.75",
    "distort": "volume=2,vibrato=f=7:d=0.5",
    "metallic": "aecho=0.8:0.88:6:0.4",
    "reverb": "areverse,aecho=0.8:0.9:1000:0.3,areverse",
    "nightcore": "aresample=44100,asetrate=44100*1.25,aresample=44100,atempo=0.85",
    "underwater": "lowpass=f=800",
    "robotize": "aresample=44100,asetrate=8000,vibrato=f=5:d=0.5,aresample=8000",
    "telephone": "highpass=f=600,lowpass=f=3000,equalizer=f=1200:t=q:w=1:g=10",
    "retroaudio": "aresample=8000,aformat=sample_fmts=u8",
    "bassboosted": "bass=g=15:f=110:width_type=h",
    "extremebass": "bass=g=20:f=60:width_type=h,volume=3dB",
    "distortbass": "bass=g=18:f=80:width_type=h,volume=3dB",
    "earrape": "bass=g=15:f=60:width_type=h,treble=g=5,volume=4dB",
    "clippedbass": "bass=g=18:f=80:width_type=h,volume=2.5dB",
    "saturate": "bass=g=2,treble=g=1,volume=2",
    "crunch": "acrusher=level_in=4:level_out=1.5:bits=4:mode=log:aa=0",
    "lofi": "aresample=6000:filter_type=cubic,aresample=44100:filter_type=cubic",
    "hardclip": "acrusher=bits=4:mode=log:aa=0,bass=g=7,volume=2",
    "crushcrush": "acrusher=level_in=4:level_out=1.5:bits=3:mode=log:mix=0.4",
    "deepfried": "bass=g=8:f=100:width_type=h,acrusher=level_in=4:level_out=1.5:bits=3:mode=log:mix=1",
    "destroy8bit": (
        "aresample=8000:filter_type=cubic,"
        "acrusher=level_in=4:level_out=1.5:bits=2:mode=log:aa=0,aresample=44100"
    ),
    "nuked": (
        "bass=g=15:f=60:width_type=h,"
        "acrusher=level_in=4:level_out=1.5:bits=3:mode=log:aa=0,volume=6dB"
    ),
    "phonk": "bass=g=10:f=70:width_type=h,atempo=0.85,aresample=44100,asetrate=44100*0.95,aresample=44100",
    "vaporwave": "aresample=44100,asetrate=44100*0.8,aresample=44100,bass=g=5:f=150:width_type=h",
    "alien": "vibrato=f=8:d=1,aresample=44100",
    "demon": "aresample=44100,asetrate=44100*0.7,aresample=44100",
    "destroy": "acrusher=bits=2:mode=lin:mix=1,areverse",
    "bitcrush": "acrusher=bits=4:mode=log:aa=1",
    "distortion": "highpass=f=1000,lowpass=f=5000,volume=3",
    "haunted": (
        "atempo=0.9,aecho=0.8:0.8:1000|1800|500:0.7|0.5|0.3,areverse,"
        "aecho=0.8:0.8:500|1000:0.5|0.3,areverse"
    ),
    "corrupt": (
        "afftfilt=real='hypot(re,im)*sin((random(0)*2)*3.14)'"
        ":imag='hypot(re,im)*cos((random(1)*2)*3.14)':win_size=256:overlap=0.6"
    ),
    "static": "highpass=f=200,afftfilt=real='re*0.9':imag='im*0.9',volume=1.5",
    "backwards": "areverse",
    "wobble": "vibrato=f=2.5:d=1,tremolo=f=1:d=0.8",
    "hall": "aecho=0.8:0.9:1000|1800|2500:0.7|0.5|0.3",
    "mountains": "aecho=0.8:0.9:500|1000:0.2|0.1",
    "whisper": (
        "afftfilt=real='hypot(re,im)*cos((random(0)*2-1)*2*3.14)'"
        ":imag='hypot(re,im)*sin((random(1)*2-1)*2*3.14)':win_size=128:overlap=0.8"
    ),
    "clipping": "acrusher=.1:1:64:0:log",
    "ess": "deesser=i=1:s=e",
    "datacorrupt": "afftfilt=real='if(gt(random(0),0.95),0,re)':imag='if(gt(random(0),0.95),0,im)'",
    "bitrot": (
        "afftfilt=real='if(gt(random(0),0.98),random(1)*255,re)'"
        ":imag='if(gt(random(0),0.98),random(1)*255,im)'"
    ),
    "stackcorrupt": (
        "afftfilt=real='if(gt(random(0),0.99),re*random(1)*10,re)'"
        ":imag='if(gt(random(0),0.99),im*random(1)*10,im)'"
    ),
    "quantum": "afftfilt=real='hypot(re,im)*cos(random(0)*6.28)':imag='hypot(re,im)*sin(random(0)*6.28)'",
    "voidecho": "aecho=0.9:0.95:2000|4000|8000:0.8|0.6|0.4,areverse,aecho=0.8:0.9:1000:0.3,areverse",
    "dimension": "aphaser=delay=5:decay=0.8:speed=0.1,aecho=0.7:0.8:3000:0.5",
    "timerift": "atempo=0.5,areverse,atempo=2,areverse,atempo=0.8",
    "cassettetape": "aresample=22050,flanger=delay=5:depth=2:regen=50,aresample=44100,highpass=f=80,lowpass=f=12000",
    "compressor": "acompressor=threshold=0.1:ratio=4:attack=5:release=50:makeup=2",
    "limiter": "alimiter=level_in=1:level_out=0.8:limit=0.9",
    "autopan": "apulsator=hz=0.5:width=1",
    "sidechain": "agate=threshold=0.1:ratio=2:attack=1:release=5",
}

# =============================================================================
# FIXED VIDEO EFFECTS
# =============================================================================

VIDEO_EFFECTS: Dict[str, str] = {
    "invert": "negate",
    "hmirror": "hflip",
    "vmirror": "vflip",
    "blur": "boxblur=10:5",
    "shake": "crop=iw-80:ih-80:40+40*sin(n/10):40+40*sin(n/15)",
    "crt": "noise=c0s=13:c0f=t+u,vignette=0.2",
    "hooh": "split[a][b];[a]crop=iw:ih/2:0:0,vflip[bottom];[b][bottom]overlay=0:H/2",
    "woow": "split[a][b];[a]crop=iw:ih/2:0:ih/2,vflip[top];[b][top]overlay=0:0",
    "vhs": (
        "noise=alls=15:allf=t,curves=r=0.2:g=0.1:b=0.2,hue=h=5,"
        "colorbalance=rs=0.1:bs=-0.1,format=yuv420p,drawgrid=w=iw/24:h=2*ih:t=1:c=white@0.2"
    ),
    "oldfilm": "curves=r=0.2:g=0.1:b=0.2,noise=alls=7:allf=t,hue=h=9,eq=brightness=0.05:saturation=0.5,vignette",
    "kaleidoscope": (
        "split[a][b];[a]crop=iw/2:ih/2:0:0,hflip[a1];[b]crop=iw/2:ih/2:iw/2:0,vflip[b1];"
        "[a1][b1]hstack,split[t1][t2];[t1][t2]vstack"
    ),
    "dreameffect": "gblur=sigma=5,eq=brightness=0.1:saturation=1.5",
    "ascii": "format=gray,scale=iw*0.2:-2,eq=brightness=0.3,boxblur=1:1,scale=iw*5:-2:flags=neighbor",
    "psychedelic": "hue=h=mod(t*40\\,360):b=0.4,eq=contrast=2:saturation=8,gblur=sigma=5:sigmaV=5",
    "waves": "noise=alls=20:allf=t,eq=contrast=1.5:brightness=-0.1:saturation=1.2",
    "v360_fisheye": "v360=input=equirect:output=fisheye:w=720:h=720",
    "v360_cube": "v360=input=equirect:output=c3x2:w=1080:h=720",
    "planet": "v360=input=equirect:output=stereographic:w=720:h=720",
    "tiny_planet": "v360=input=equirect:output=stereographic:w=720:h=720:yaw=0:pitch=-90",
    "fisheye": "v360=input=flat:output=fisheye:w=720:h=720",
    "oscilloscope": "oscilloscope=s=1:r=1",
    "waveform": "waveform=filter=lowpass:mode=column:mirror=1:display=stack:components=7",
    "vectorscope": "vectorscope=mode=color3:intensity=0.89",
    "interlace": "telecine",
    "scanlines": (
        "geq=r='if(mod(Y,4),r(X,Y),r(X,Y)*0.3)':g='if(mod(Y,4),g(X,Y),g(X,Y)*0.3)'"
        ":b='if(mod(Y,4),b(X,Y),b(X,Y)*0.3)'"
    ),
    "chromashift": (
        "split=3[a][b][c];[a]lutrgb=g=0:b=0[r];[b]lutrgb=r=0:b=0[g];[c]lutrgb=r=0:g=0[bl];"
        "[r][g]blend=all_mode=addition[rg];[rg][bl]blend=all_mode=addition"
    ),
    "memoryglitch": (
        "geq=r='if(gt(random(1),0.99),random(1)*255,r(X,Y))'"
        ":g='if(gt(random(1),0.99),random(1)*255,g(X,Y))'"
        ":b='if(gt(random(1),0.99),random(1)*255,b(X,Y))'"
    ),
    "datamoshing": (
        "noise=alls=50:allf=t,geq=r='if(gt(random(1),0.98),255,r(X,Y))'"
        ":g='if(gt(random(1),0.98),0,g(X,Y))':b='if(gt(random(1),0.98),255,b(X,Y))'"
    ),
    "spin": "rotate=t*PI/4:c=black:ow=in_w:oh=in_h",
    "zoom": "zoompan=z='zoom+0.002':d=125:x=iw/2-(iw/zoom/2):y=ih/2-(ih/zoom/2):s=1280x720",
    "vintage": "curves=r=0.2:g=0.1:b=0.2,noise=alls=7:allf=t,hue=h=9,vignette=0.3",
    "cyberpunk": (
        "format=rgb24,geq=r='if(gt(r(X,Y),128),255,0)':g='if(gt(g(X,Y),128),255,g(X,Y)*2)':b='255',hue=h=180"
    ),
    "hologram": "split[a][b];[a]negate,hue=h=180[neg];[b][neg]overlay=x=2:y=2:eval=frame,noise=alls=30:allf=t",
    "commodore64": (
        "scale=320:200:flags=neighbor,"
        "lutrgb=r='if(lt(val,64),0,if(lt(val,128),85,if(lt(val,192),170,255)))'"
        ":g='if(lt(val,64),0,if(lt(val,128),85,if(lt(val,192),170,255)))'"
        ":b='if(lt(val,64),0,if(lt(val,128),85,if(lt(val,192),170,255)))',"
        "scale=1280:720:flags=neighbor"
    ),
    "nes": (
        "scale=256:240:flags=neighbor,"
        "lutrgb=r='floor(val/32)*32':g='floor(val/32)*32':b='floor(val/32)*32',"
        "scale=1280:720:flags=neighbor"
    ),
}

EFFECT_ALIASES: Dict[str, str] = {
    "fast": "speed",
    "slow": "speed",
    "echo": "aecho",
    "robot": "robotize",
    "phone": "telephone",
    "tv": "vhs",
    "retro": "vhs",
    "old": "oldfilm",
    "mirror": "hmirror",
    "flip": "vmirror",
    "rainbow": "huerotate",
    "pixelate": "pixelize",
    "dream": "dreameffect",
    "acid": "psychedelic",
    "wave": "waves",
    "8bit": "retroaudio",
}

# Values implied by an alias when the caller gives none
ALIAS_DEFAULTS: Dict[str, EffectValue] = {
    "fast": 1.5,
    "slow": 0.75,
}

PIXEL_FORMATS = {
    "rgb": "rgb24",
    "yuv": "yuv422p16le",
    "gray": "gray16le",
    "bgr": "bgr444le",
    "gbr": "gbrp10le",
    "yuv10": "yuv420p10le",
    "yuv16": "yuv420p16le",
}


# =============================================================================
# PARAMETRIC EFFECTS
# =============================================================================

def _is_number(value: EffectValue) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def number_between(low: float, high: float, low_inclusive: bool = True) -> Callable[[EffectValue], bool]:
    """Validator accepting numbers in [low, high] (or (low, high])."""
    def check(value: EffectValue) -> bool:
        if not _is_number(value):
            return False
        above = value >= low if low_inclusive else value > low
        return above and value <= high
    return check


def one_of(*choices: str) -> Callable[[EffectValue], bool]:
    def check(value: EffectValue) -> bool:
        return isinstance(value, str) and value.lower() in choices
    return check


def atempo_chain(factor: float) -> str:
    """Chain atempo filters so every stage stays inside 0.5-2.0."""
    stages: List[str] = []
    remaining = factor
    while remaining < 0.5:
        stages.append("atempo=0.5")
        remaining /= 0.5
    while remaining > 2.0:
        stages.append("atempo=2.0")
        remaining /= 2.0
    stages.append(f"atempo={remaining:.4g}")
    return ",".join(stages)


def _seed() -> int:
    return random.randint(0, 9999)


def _noise_amount(level: Optional[EffectValue]) -> int:
    return max(1, min(40, int(float(level) * 5)))


def _parametric_effects() -> List[EffectDefinition]:
    audio, video, complex_ = EffectType.AUDIO, EffectType.VIDEO, EffectType.COMPLEX
    return [
        # Audio
        EffectDefinition(
            "aecho", audio,
            lambda v: f"aecho=0.8:0.8:{90 + v * 100:g}:0.6",
            number_between(0, 2), default=0.6, description="Echo; value sets the delay",
        ),
        EffectDefinition(
            "phaser", audio,
            lambda v: f"aphaser=type=t:speed={min(2.0, max(0.1, v * 0.7)):g}:decay=0.5",
            number_between(0, 2.8, low_inclusive=False), default=1, description="Phaser sweep",
        ),
        EffectDefinition(
            "flanger", audio,
            lambda v: f"flanger=delay={min(30, max(1, v * 10)):g}:depth={min(10, max(1, v * 10)):g}",
            number_between(0, 10, low_inclusive=False), default=0.5, description="Flanger",
        ),
        EffectDefinition(
            "tremolo", audio,
            lambda v: f"tremolo=f={max(0.5, v * 2):g}:d=0.8",
            number_between(0, 20, low_inclusive=False), default=4, description="Tremolo",
        ),
        EffectDefinition(
            "vibrato", audio,
            lambda v: f"vibrato=f={max(1, v * 2):g}:d=0.5",
            number_between(0, 20, low_inclusive=False), default=5, description="Vibrato",
        ),
        EffectDefinition(
            "chorus", audio,
            lambda v: f"chorus=0.5:0.9:{50 + v * 20:g}:0.4:0.25:2",
            number_between(0, 5, low_inclusive=False), default=0.5, description="Chorus",
        ),
        EffectDefinition(
            "bass", audio,
            lambda v: f"bass=g={min(30, v):g}",
            number_between(0, 30), default=10, description="Bass boost in dB",
        ),
        EffectDefinition(
            "treble", audio,
            lambda v: f"treble=g={v:g}",
            number_between(-20, 20), default=5, description="Treble gain in dB",
        ),
        EffectDefinition(
            "volume", audio,
            lambda v: f"volume={v:g}",
            number_between(0, 5, low_inclusive=False), default=2, description="Volume multiplier",
        ),
        EffectDefinition(
            "pitch", audio,
            lambda v: f"aresample=44100,asetrate=44100*{v:g},aresample=44100,{atempo_chain(1 / v)}",
            number_between(0.5, 2), default=1.5, description="Pitch shift, tempo preserved",
        ),
        EffectDefinition(
            "crystalizer", audio,
            lambda v: f"crystalizer=i={min(9.9, v):g}",
            number_between(0, 10), default=5, description="Crystalizer intensity",
        ),
        # Video
        EffectDefinition(
            "huerotate", video,
            lambda v: f"hue=h=mod(t*{max(10, v * 20):g}\\,360)",
            number_between(0, 100, low_inclusive=False), default=1, description="Rotating hue",
        ),
        EffectDefinition(
            "pixelize", video,
            lambda v: (
                f"scale=iw*{max(0.01, v):g}:-2:flags=neighbor,"
                f"scale=iw*{1 / max(0.01, v):g}:-2:flags=neighbor"
            ),
            number_between(0, 1, low_inclusive=False), default=0.05, description="Pixelation",
        ),
        EffectDefinition(
            "drunk", video,
            lambda v: f"tmix=frames={int(min(48, v))}",
            number_between(0, 48, low_inclusive=False), default=8, description="Frame smear",
        ),
        EffectDefinition(
            "pixelshift", video,
            lambda v: f"format={PIXEL_FORMATS.get(str(v).lower(), 'yuv420p16le')},format=yuv420p",
            one_of(*PIXEL_FORMATS), default="yuv16", description="Pixel format round trip",
        ),
        # Complex (video;audio)
        EffectDefinition(
            "speed", complex_,
            lambda v: f"setpts={1 / v:.4g}*PTS;{atempo_chain(v)}",
            number_between(0, 8, low_inclusive=False), default=1, description="Playback speed",
        ),
        EffectDefinition(
            "slowmo", complex_,
            lambda v: f"setpts={1 / v:.4g}*PTS;{atempo_chain(v)}",
            number_between(0.1, 1), default=0.5, description="Slow motion",
        ),
        fixed_effect("reverse", complex_, "reverse;areverse", "Reverse audio and video"),
        EffectDefinition(
            "glitch", complex_,
            lambda v: (
                f"noise=c0s={_noise_amount(v)}:c1s={_noise_amount(v)}:c2s={_noise_amount(v)}"
                f":all_seed={_seed()}"
            ),
            number_between(0, 20), default=3, description="Digital glitch", randomized=True,
        ),
        EffectDefinition(
            "datamosh", complex_,
            lambda v: f"noise=alls={_noise_amount(v)}:allf=t+u:all_seed={_seed()}",
            number_between(0, 20), default=3, description="Datamosh noise", randomized=True,
        ),
        EffectDefinition(
            "noise", complex_,
            lambda v: (
                f"noise=c0s=20:c1s=0:c2s=0:all_seed={_seed()}"
                if str(v).lower() in ("bw", "mono")
                else f"noise=c0s=20:c1s=20:c2s=20:all_seed={_seed()}"
            ),
            one_of("bw", "mono", "color"), default="color", description="Noise", randomized=True,
        ),
    ]


def build_default_registry() -> EffectRegistry:
    """Construct the full built-in registry."""
    definitions: List[EffectDefinition] = []
    parametric = _parametric_effects()
    taken = {d.name for d in parametric}

    for name, fragment in AUDIO_EFFECTS.items():
        if name not in taken:
            definitions.append(fixed_effect(name, EffectType.AUDIO, fragment))
    for name, fragment in VIDEO_EFFECTS.items():
        if name not in taken:
            definitions.append(fixed_effect(name, EffectType.VIDEO, fragment))
    definitions.extend(parametric)

    return EffectRegistry(definitions, EFFECT_ALIASES, ALIAS_DEFAULTS)
