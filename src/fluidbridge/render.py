"""Offline MIDI-to-audio rendering with FluidSynth's player and file renderer.

The render runs on a clone of the calling session created without an audio
driver, so a live session keeps playing undisturbed.  The player is driven by
the sample timing source and the file renderer is polled block by block until
the player stops, which renders as fast as the CPU allows.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING, List

from .arena import scoped
from .diagnostics import log_event
from .errors import InputNotFoundError, RenderError
from .native_runtime import FLUID_OK, FLUID_PLAYER_PLAYING

if TYPE_CHECKING:  # pragma: no cover
    from .session import SynthSession


class OfflineRenderPipeline:
    """Render one input sequence file into one audio file."""

    def __init__(self, session: "SynthSession", file_type: str = "wav") -> None:
        self.session = session
        self.file_type = file_type
        self.blocks_rendered = 0

    def render(self, input_path: str | Path, output_path: str | Path) -> Path:
        source = Path(input_path)
        target = Path(output_path).absolute()
        if not source.is_file() or not os.access(source, os.R_OK):
            raise InputNotFoundError(source.absolute())
        log_event("render", f"render() -- input={source.absolute()} output={target}")

        clone = self.session.clone(create_audio_driver=False)
        ffi = clone.surface.ffi
        lib = clone.surface.lib
        player = ffi.NULL
        renderer = ffi.NULL
        errors: List[str] = []
        self.blocks_rendered = 0
        try:
            settings = clone.settings
            self._check(settings.set_string("audio.file.name", str(target)), target, "Can't set audio.file.name")
            self._check(settings.set_string("audio.file.type", self.file_type), target, "Can't set audio.file.type")
            self._check(
                settings.set_string("player.timing-source", "sample"),
                target,
                "Can't set player.timing-source",
            )
            # Pinning sample data only matters for realtime playback.
            self._check(settings.set_int("synth.lock-memory", 0), target, "Can't set synth.lock-memory")

            synth = clone.native_synth
            player = lib.new_fluid_player(synth)
            self._check(player != ffi.NULL, target, "Can't create player")
            with scoped(ffi) as arena:
                rc = lib.fluid_player_add(player, arena.cstring(str(source.absolute())))
            self._check(int(rc) == FLUID_OK, target, "Can't set input file as player input")
            self._check(int(lib.fluid_player_play(player)) == FLUID_OK, target, "Can't start player")

            renderer = lib.new_fluid_file_renderer(synth)
            self._check(renderer != ffi.NULL, target, "Can't create file renderer")
            while int(lib.fluid_player_get_status(player)) == FLUID_PLAYER_PLAYING:
                if int(lib.fluid_file_renderer_process_block(renderer)) != FLUID_OK:
                    errors.append(f"block {self.blocks_rendered} failed")
                    break
                self.blocks_rendered += 1
        finally:
            if player != ffi.NULL:
                if int(lib.fluid_player_stop(player)) != FLUID_OK:
                    errors.append("Can't stop player")
                if int(lib.fluid_player_join(player)) != FLUID_OK:
                    errors.append("Can't join player")
            if renderer != ffi.NULL:
                lib.delete_fluid_file_renderer(renderer)
            if player != ffi.NULL:
                lib.delete_fluid_player(player)
            clone.close()

        if errors:
            error = RenderError(target, "; ".join(errors))
            log_event("render", str(error))
            raise error
        log_event("render", f"render() done, {self.blocks_rendered} block(s) written to {target}")
        return target

    @staticmethod
    def _check(ok: bool, target: Path, message: str) -> None:
        if not ok:
            raise RenderError(target, message)


def render_to_file(
    session: "SynthSession",
    input_path: str | Path,
    output_path: str | Path,
    file_type: str = "wav",
) -> Path:
    """Render ``input_path`` into ``output_path`` using a clone of ``session``."""

    return OfflineRenderPipeline(session, file_type=file_type).render(input_path, output_path)


__all__ = ["OfflineRenderPipeline", "render_to_file"]
