"""
Editor session: the context object tying decoder, pipeline, history, store,
viewport and histogram together for one folder of photos.

All methods run on the asyncio event loop. Half-size decodes run in the
default thread executor; full-resolution decodes go to an isolated worker
and are discarded if the selection changed while they ran.
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Sequence, Union

from ..config import get_default_config
from ..exceptions import DecodeError, StoreError
from ..engine.histogram import HistogramSampler
from ..engine.pipeline import ColorPipeline
from ..engine.surface import DisplaySurface
from ..io.export import ExportOptions, export_image, write_export
from ..io.sidecar import deserialize_record
from ..io.store import FolderEditStore
from ..processing.edits import Crop, CropChange, EditParameters, ParamChange, create_default
from ..processing.history import EditHistory
from ..raw.decoder import DecodedImage, RawDecoder
from ..raw.metadata import ImageMetadata, extract_metadata
from ..raw.worker import FullResolutionLoader
from .autosave import AutoSaver
from .scheduler import AsyncioScheduler, RedrawCoalescer, Scheduler
from .viewport import Viewport

logger = logging.getLogger(__name__)


class EditorSession:
    """
    Interactive editing state for the photos in one folder.

    Args:
        folder: Folder holding the photos and the edit store
        names: File names in catalog order
        reader: Returns the raw bytes for a file name
        config: Configuration dictionary (defaults when omitted)
        scheduler: Event-loop scheduler
        surface: Display surface to draw into
        decoder: RAW decoder for half-size and export decodes
        loader: Full-resolution worker loader
        pipeline: Colour pipeline; built when omitted
    """

    def __init__(self, folder: Union[str, Path], names: Sequence[str] = (),
                 reader: Optional[Callable[[str], bytes]] = None,
                 config: Optional[Dict[str, Any]] = None,
                 scheduler: Optional[Scheduler] = None,
                 surface: Optional[DisplaySurface] = None,
                 decoder: Optional[RawDecoder] = None,
                 loader: Optional[FullResolutionLoader] = None,
                 pipeline: Optional[ColorPipeline] = None):
        self.config = config or get_default_config()
        self.folder = Path(folder)
        self.names = list(names)
        self.reader = reader or self._read_from_folder
        self.scheduler = scheduler or AsyncioScheduler()

        history_cfg = self.config['history']
        autosave_cfg = self.config['autosave']
        histogram_cfg = self.config['histogram']
        viewport_cfg = self.config['viewport']
        decoder_cfg = self.config['decoder']

        self.surface = surface or DisplaySurface(1280, 800)
        self.pipeline = pipeline or ColorPipeline(self.surface)
        self.decoder = decoder or RawDecoder.from_config(self.config)
        self.loader = loader or FullResolutionLoader(
            pixel_budget=decoder_cfg['full_resolution_pixel_budget'],
            use_dcraw=decoder_cfg['use_dcraw'],
            dcraw_path=decoder_cfg['dcraw_path'],
        )
        self.store = FolderEditStore(self.folder, autosave_cfg['store_filename'])
        self.history = EditHistory(self.scheduler, history_cfg['debounce_seconds'],
                                   history_cfg['capacity'])
        self.autosaver = AutoSaver(self.scheduler, self.history, self.store,
                                   autosave_cfg['delay_seconds'])
        self.histogram = HistogramSampler(histogram_cfg['min_interval_seconds'],
                                          histogram_cfg['sample_stride'],
                                          clock=self.scheduler.now)
        self.viewport = Viewport(min_zoom=viewport_cfg['min_zoom'],
                                 max_zoom=viewport_cfg['max_zoom'])
        self.full_resolution_zoom = viewport_cfg['full_resolution_zoom']
        self.redraw = RedrawCoalescer(self.scheduler, self._draw_frame, viewport_cfg['refresh_hz'])

        self.generation = 0
        self.index = -1
        self.name: Optional[str] = None
        self.buffer: Optional[bytes] = None
        self.image: Optional[DecodedImage] = None
        self.metadata = ImageMetadata()
        self.comparing = False
        self.crop_editing = False
        self._full_res_requested = False
        self._tasks = set()

    # ------------------------------------------------------------------
    # Image selection
    # ------------------------------------------------------------------

    def _read_from_folder(self, name: str) -> bytes:
        return (self.folder / name).read_bytes()

    async def select(self, index: int) -> bool:
        """Open the catalog entry at ``index``."""
        if not 0 <= index < len(self.names):
            logger.debug(f"No catalog entry at index {index}")
            return False
        name = self.names[index]
        buffer = self.reader(name)
        return await self.open_image(index, name, buffer)

    async def next_image(self) -> bool:
        return await self.select(self.index + 1)

    async def previous_image(self) -> bool:
        if self.index <= 0:
            return False
        return await self.select(self.index - 1)

    async def open_image(self, index: int, name: str, buffer: bytes) -> bool:
        """
        Decode and install a new image, restoring its persisted edits.

        Returns:
            False if another selection superseded this one while decoding

        Raises:
            DecodeError: if the buffer cannot be decoded at all
        """
        self._leave_current_image()

        self.generation += 1
        generation = self.generation
        self.index = index
        self.name = name
        self.buffer = buffer
        self.image = None
        self._full_res_requested = False
        logger.info(f"Opening {name} (generation {generation})")

        loop = asyncio.get_running_loop()
        try:
            image = await loop.run_in_executor(None, self.decoder.decode, buffer, True)
        except DecodeError:
            if generation == self.generation:
                self.pipeline.clear_source()
            raise

        if generation != self.generation:
            logger.warning(f"Discarding decode of {name}: selection changed")
            return False

        self.image = image
        self.metadata = extract_metadata(buffer, self.config['decoder']['dcraw_path']
                                         if self.config['decoder']['use_dcraw'] else None)
        self._restore_edits(name)
        self.autosaver.attach(name)

        self.pipeline.set_source(image.pixels)
        self.viewport.reset()
        self.crop_editing = False
        self.comparing = False
        self.request_redraw()
        return True

    def _leave_current_image(self) -> None:
        if self.name is None:
            return
        self.history.flush()
        self.autosaver.detach()

    def _restore_edits(self, name: str) -> None:
        try:
            record = self.store.load(name)
        except StoreError as e:
            logger.warning(f"Could not load edits for {name}, starting from defaults: {e}")
            record = None
        params, timeline, index = deserialize_record(record)
        self.history.load(params, timeline, index)

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    @property
    def parameters(self) -> EditParameters:
        return self.history.parameters

    def set_param(self, change: ParamChange) -> EditParameters:
        params = self.history.set_param(change)
        self.request_redraw()
        return params

    def end_drag(self) -> None:
        self.history.end_drag()

    def set_crop(self, crop: Optional[Crop]) -> EditParameters:
        return self.set_param(CropChange(crop))

    def undo(self) -> bool:
        return self._after_history(self.history.undo())

    def redo(self) -> bool:
        return self._after_history(self.history.redo())

    def jump_to(self, index: int) -> None:
        self.history.jump_to(index)
        self.request_redraw()

    def reset_all(self) -> bool:
        return self._after_history(self.history.reset_all())

    def _after_history(self, changed: bool) -> bool:
        if changed:
            self.request_redraw()
        return changed

    def begin_compare(self) -> None:
        """Show the unedited image until ``end_compare``."""
        if not self.comparing:
            self.comparing = True
            self.request_redraw()

    def end_compare(self) -> None:
        if self.comparing:
            self.comparing = False
            self.request_redraw()

    def toggle_crop(self) -> bool:
        """Enter or leave crop editing. Returns the new mode."""
        self.crop_editing = not self.crop_editing
        if not self.crop_editing:
            self.history.flush()
        self.request_redraw()
        return self.crop_editing

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    def wheel(self, delta_y: float, anchor=(0.0, 0.0)) -> None:
        if self.viewport.wheel(delta_y, anchor):
            self._maybe_load_full_resolution()
            self.request_redraw()

    def zoom_at(self, factor: float, anchor=(0.0, 0.0)) -> None:
        if self.viewport.zoom_at(factor, anchor):
            self._maybe_load_full_resolution()
            self.request_redraw()

    def pan_by(self, dx: float, dy: float) -> None:
        self.viewport.pan_by(dx, dy)
        self.request_redraw()

    def reset_view(self) -> None:
        self.viewport.reset()
        self.request_redraw()

    def _maybe_load_full_resolution(self) -> None:
        if self._full_res_requested or self.image is None or not self.image.half_size:
            return
        if not self.viewport.needs_full_resolution(self.full_resolution_zoom):
            return
        self._full_res_requested = True
        task = asyncio.ensure_future(self._load_full_resolution(self.generation, self.buffer))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _load_full_resolution(self, generation: int, buffer: bytes) -> None:
        try:
            result = await self.loader.load(buffer, generation)
        except DecodeError as e:
            logger.warning(f"Full-resolution decode failed, keeping preview: {e}")
            return
        if result is None or self.pipeline.released:
            return
        if result.generation != self.generation:
            logger.warning(f"Discarding full-resolution result for generation {result.generation}, "
                           f"current is {self.generation}")
            return

        self.image = result.image
        self.pipeline.set_source(result.image.pixels)
        logger.info(f"Switched to full resolution {result.image.width}x{result.image.height}")
        self.request_redraw()

    async def wait_for_background(self) -> None:
        """Wait for any in-flight full-resolution loads."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks))

    # ------------------------------------------------------------------
    # Drawing
    # ------------------------------------------------------------------

    def request_redraw(self) -> None:
        self.redraw.request()

    def _draw_frame(self) -> None:
        params = create_default() if self.comparing else self.history.parameters
        drawn = self.pipeline.render(params, crop_editing=self.crop_editing,
                                     zoom=self.viewport.zoom,
                                     pan=(self.viewport.pan_x, self.viewport.pan_y))
        if drawn:
            self.histogram.update(self.surface, self.surface.last_viewport)

    # ------------------------------------------------------------------
    # Export and teardown
    # ------------------------------------------------------------------

    def default_export_path(self) -> Path:
        return self.folder / 'exports' / f"{Path(self.name).stem}.jpg"

    async def export(self, path: Optional[Union[str, Path]] = None,
                     options: Optional[ExportOptions] = None) -> Optional[Path]:
        """
        Render the current edits at full resolution and write a JPEG.

        Returns:
            The written path, or None when no image is open
        """
        if self.buffer is None:
            return None
        self.history.flush()
        options = options or ExportOptions.from_config(self.config)
        path = Path(path) if path is not None else self.default_export_path()

        loop = asyncio.get_running_loop()
        image = await loop.run_in_executor(None, self.decoder.decode, self.buffer, False)
        data = export_image(self.pipeline, self.history.parameters, image.pixels, options)
        return write_export(path, data)

    def close(self) -> None:
        """
        Flush pending edits to the store and release the pipeline.

        In-flight full-resolution loads are cancelled and any result that
        still arrives is treated as stale.
        """
        self.generation += 1
        for task in list(self._tasks):
            task.cancel()
        self.history.flush()
        self.autosaver.close()
        self.redraw.cancel()
        self.pipeline.release()
        logger.debug("Editor session closed")
