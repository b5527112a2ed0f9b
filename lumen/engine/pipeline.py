"""
Colour pipeline for Lumen.

Turns a linear-light source image plus EditParameters into a displayed frame
through an ordered sequence of render passes:

1. main      - white balance, exposure, tone, HSL, grading, saturation, curves
2. dehaze
3. clarity   - local contrast from a wide blur (texture shares the pass)
4. sharpen   - unsharp mask
5. denoise
6. vignette  - centred on the crop rectangle
7. output    - crop/straighten and draw to the surface or an export buffer

Passes 2-6 are skipped at neutral settings. Intermediate results ping-pong
between two targets in a TargetArena; blur passes use its third target.
"""

import logging
from typing import Dict, List, Optional, Tuple

import numpy as np

from ..exceptions import PipelineError, ProgramCompileError
from ..processing.edits import EditParameters
from .programs import CurveLuts, Program, RenderContext, default_programs
from .resources import ResourceTracker, TargetArena, Texture, crop_rect_pixels
from .surface import DisplaySurface

logger = logging.getLogger(__name__)

BLUR_PASSES = ('clarity', 'sharpen', 'denoise')


class ColorPipeline:
    """
    Owns compiled programs, curve lookup textures, the source texture and the
    target arena. Construction fails with ProgramCompileError if any program
    cannot be built, after releasing whatever was already allocated.

    Use ``release()`` (or the context manager form) to free every resource.
    """

    def __init__(self, surface: Optional[DisplaySurface] = None,
                 programs: Optional[Dict[str, Program]] = None,
                 tracker: Optional[ResourceTracker] = None):
        self.surface = surface
        self.tracker = tracker or ResourceTracker()
        self.programs: Dict[str, Program] = {}
        self.source: Optional[Texture] = None
        self.arena: Optional[TargetArena] = None
        self.last_passes: List[str] = []
        self.released = False

        requested = programs if programs is not None else default_programs()
        try:
            for key, program in requested.items():
                program.compile(self.tracker)
                self.programs[key] = program
        except ProgramCompileError as e:
            logger.error(f"Pipeline construction failed: {e}")
            self._release_programs()
            raise

        missing = {'main', 'output'} - set(self.programs)
        if missing:
            self._release_programs()
            raise PipelineError(f"Pipeline is missing required programs: {sorted(missing)}")

        self.luts = CurveLuts(self.tracker)
        logger.debug(f"Colour pipeline ready with {len(self.programs)} programs")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    # ------------------------------------------------------------------
    # Source management
    # ------------------------------------------------------------------

    def set_source(self, pixels: np.ndarray) -> None:
        """
        Install a new linear-light (H, W, 3) source image.

        Previous source and targets are released before the new ones are
        allocated at the new image size.
        """
        self._check_open()
        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"Source must be (H, W, 3), got {pixels.shape}")

        self._release_source()
        height, width = pixels.shape[:2]
        self.source = Texture(self.tracker, np.ascontiguousarray(pixels, dtype=np.float32), name='source')
        self.arena = TargetArena(self.tracker, width, height)
        logger.debug(f"Installed source {width}x{height}")

    def clear_source(self) -> None:
        self._release_source()

    def get_image_dimensions(self) -> Optional[Tuple[int, int]]:
        """(width, height) of the installed source, or None."""
        if self.source is None:
            return None
        return self.arena.width, self.arena.height

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, params: EditParameters, crop_editing: bool = False,
               zoom: float = 1.0, pan: Tuple[float, float] = (0.0, 0.0)) -> bool:
        """
        Render ``params`` to the display surface.

        Returns:
            False when no source is installed (nothing drawn)
        """
        self._check_open()
        if self.source is None:
            logger.debug("Render requested with no source installed, skipping")
            return False
        if self.surface is None:
            raise PipelineError("No display surface attached")

        frame = self._run(self.arena, self.source.pixels, params, crop_editing)
        self.surface.present(frame, zoom, pan)
        return True

    def render_to_buffer(self, params: EditParameters,
                         source: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Render to an 8-bit RGB buffer at the resolution of ``source``.

        ``source`` defaults to the installed image; export passes its
        full-resolution decode here. Crop is always applied.
        """
        self._check_open()
        if source is None:
            if self.source is None:
                raise PipelineError("No source installed for buffer render")
            return self._run(self.arena, self.source.pixels, params, crop_editing=False)

        height, width = source.shape[:2]
        arena = TargetArena(self.tracker, width, height)
        try:
            return self._run(arena, np.ascontiguousarray(source, dtype=np.float32),
                             params, crop_editing=False)
        finally:
            arena.release()

    def _run(self, arena: TargetArena, source: np.ndarray, params: EditParameters,
             crop_editing: bool) -> np.ndarray:
        passes = []
        if crop_editing:
            params = params.without_crop()
        crop_rect = crop_rect_pixels(params.crop, arena.width, arena.height)

        self.luts.update(params.tone_curve)
        ctx = RenderContext(params=params, luts=self.luts, crop_rect=crop_rect)

        main = self.programs['main']
        current = arena.run_pass('main', (), 0, lambda: main.render(source, ctx=ctx))
        passes.append('main')

        dehaze = self.programs.get('dehaze')
        if dehaze is not None and dehaze.is_active(ctx):
            current = arena.run_pass('dehaze', (current,), arena.other(current),
                                     lambda cur: dehaze.render(cur, ctx=ctx))
            passes.append('dehaze')

        for name in BLUR_PASSES:
            blend = self.programs.get(name)
            leg = self.programs.get(f"{name}_h")
            if blend is None or leg is None or not blend.is_active(ctx):
                continue
            arena.run_pass(leg.name, (current,), TargetArena.BLUR_TEMP,
                           lambda cur: leg.render(cur, ctx=ctx))
            current = arena.run_pass(name, (TargetArena.BLUR_TEMP, current), arena.other(current),
                                     lambda temp, cur: blend.render(temp, cur, ctx=ctx))
            passes.append(name)

        vignette = self.programs.get('vignette')
        if vignette is not None and vignette.is_active(ctx):
            current = arena.run_pass('vignette', (current,), arena.other(current),
                                     lambda cur: vignette.render(cur, ctx=ctx))
            passes.append('vignette')

        frame = self.programs['output'].render(arena.read(current), ctx=ctx)
        passes.append('output')
        self.last_passes = passes
        logger.debug(f"Rendered passes: {', '.join(passes)}")
        return frame

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def release(self) -> None:
        """Release every texture, target and program owned by the pipeline."""
        if self.released:
            return
        self._release_source()
        self.luts.release()
        self._release_programs()
        self.released = True
        logger.debug("Colour pipeline released")

    def _release_source(self) -> None:
        if self.arena is not None:
            self.arena.release()
            self.arena = None
        if self.source is not None:
            self.source.release()
            self.source = None

    def _release_programs(self) -> None:
        for program in self.programs.values():
            program.release()
        self.programs = {}

    def _check_open(self) -> None:
        if self.released:
            raise PipelineError("Pipeline has been released")
