"""
Tests for the colour pipeline, its render resources and the display surface.
"""

import pytest
import numpy as np
from dataclasses import replace

from lumen.engine.pipeline import ColorPipeline
from lumen.engine.programs import MainProgram, OutputProgram, Program, BlendProgram, vignette_falloff
from lumen.engine.resources import ResourceTracker, TargetArena, crop_rect_pixels
from lumen.engine.surface import DisplaySurface, Region
from lumen.exceptions import PipelineError, ProgramCompileError
from lumen.processing.edits import (
    create_default, Crop, CurveChange, CurveChannel, GroupChange, GroupField,
    ScalarChange, Scalar,
)


@pytest.fixture
def pipeline(gradient_image):
    pipe = ColorPipeline(surface=DisplaySurface(160, 120))
    pipe.set_source(gradient_image)
    yield pipe
    pipe.release()


class BrokenProgram(Program):
    """Program with no render entry point."""
    name = 'broken'


class BrokenBlend(BlendProgram):
    name = 'broken_blend'

    def sigma(self, current, ctx):
        return 1.0


class TestRendering:
    """Test pass selection and output."""

    def test_default_params_run_main_and_output_only(self, pipeline):
        pipeline.render_to_buffer(create_default())
        assert pipeline.last_passes == ['main', 'output']

    def test_mid_grey_encodes_to_srgb(self, flat_image):
        with ColorPipeline() as pipe:
            pipe.set_source(flat_image)
            frame = pipe.render_to_buffer(create_default())
        assert frame.dtype == np.uint8
        assert frame.shape == (32, 40, 3)
        assert np.all(frame == 118)

    def test_exposure_brightens(self, flat_image):
        with ColorPipeline() as pipe:
            pipe.set_source(flat_image)
            base = pipe.render_to_buffer(create_default())
            params = ScalarChange(Scalar.EXPOSURE, 1.0).apply(create_default())
            brighter = pipe.render_to_buffer(params)
        assert brighter.mean() > base.mean()

    def test_active_passes_in_order(self, pipeline):
        params = create_default()
        for change in (ScalarChange(Scalar.DEHAZE, 30),
                       ScalarChange(Scalar.CLARITY, 40),
                       GroupChange(GroupField.SHARPENING_AMOUNT, 60),
                       GroupChange(GroupField.NOISE_COLOR, 50),
                       GroupChange(GroupField.VIGNETTE_AMOUNT, -40)):
            params = change.apply(params)
        pipeline.render_to_buffer(params)
        assert pipeline.last_passes == ['main', 'dehaze', 'clarity', 'sharpen',
                                        'denoise', 'vignette', 'output']

    def test_texture_alone_runs_clarity_pass(self, pipeline):
        pipeline.render_to_buffer(ScalarChange(Scalar.TEXTURE, 20).apply(create_default()))
        assert 'clarity' in pipeline.last_passes

    def test_tiny_sharpening_is_skipped(self, pipeline):
        params = GroupChange(GroupField.SHARPENING_AMOUNT, 0.5).apply(create_default())
        pipeline.render_to_buffer(params)
        assert 'sharpen' not in pipeline.last_passes

    def test_render_presents_to_surface(self, pipeline):
        assert pipeline.render(create_default())
        assert pipeline.surface.frame_count == 1
        assert pipeline.surface.last_viewport is not None

    def test_render_without_source_is_noop(self):
        with ColorPipeline(surface=DisplaySurface(10, 10)) as pipe:
            assert pipe.render(create_default()) is False
            assert pipe.surface.frame_count == 0

    def test_render_without_surface_fails(self, gradient_image):
        with ColorPipeline() as pipe:
            pipe.set_source(gradient_image)
            with pytest.raises(PipelineError):
                pipe.render(create_default())

    def test_buffer_render_without_source_fails(self):
        with ColorPipeline() as pipe:
            with pytest.raises(PipelineError):
                pipe.render_to_buffer(create_default())

    def test_vignette_darkens_corners(self, flat_image):
        params = GroupChange(GroupField.VIGNETTE_AMOUNT, -100).apply(create_default())
        with ColorPipeline() as pipe:
            pipe.set_source(flat_image)
            frame = pipe.render_to_buffer(params)
        assert frame[0, 0, 0] < frame[16, 20, 0]


class TestCrop:
    """Test crop handling in the output pass."""

    def test_crop_applied_to_buffer(self, pipeline):
        params = replace(create_default(), crop=Crop(0.0, 0.0, 0.5, 0.5))
        frame = pipeline.render_to_buffer(params)
        assert frame.shape == (24, 32, 3)

    def test_crop_editing_shows_full_frame(self, pipeline):
        params = replace(create_default(), crop=Crop(0.25, 0.25, 0.5, 0.5))
        pipeline.render(params, crop_editing=True)
        full = pipeline.surface.last_viewport
        pipeline.render(params, crop_editing=False)
        cropped = pipeline.surface.last_viewport
        assert full.width * full.height >= cropped.width * cropped.height
        assert full.width == 160

    def test_crop_rect_pixels(self):
        assert crop_rect_pixels(None, 100, 80) is None
        assert crop_rect_pixels(Crop(0.1, 0.25, 0.5, 0.5), 100, 80) == (10, 20, 50, 40)
        assert crop_rect_pixels(Crop(0.99, 0.99, 0.0, 0.0), 100, 80) == (99, 79, 1, 1)

    def test_vignette_centres_on_crop(self):
        falloff = vignette_falloff((40, 40), (0, 0, 20, 20), 0, 100, 100)
        assert falloff[10, 10] == pytest.approx(0.0, abs=1e-3)
        assert falloff[10, 10] < falloff[20, 20]


class TestCurveLuts:
    """Test lookup-table caching."""

    def test_luts_baked_only_on_change(self, pipeline):
        params = create_default()
        pipeline.render_to_buffer(params)
        assert pipeline.luts.bake_count == 4
        pipeline.render_to_buffer(params)
        assert pipeline.luts.bake_count == 4

        curved = CurveChange(CurveChannel.RED, ((0, 0), (0.5, 0.7), (1, 1))).apply(params)
        pipeline.render_to_buffer(curved)
        assert pipeline.luts.bake_count == 5
        assert not pipeline.luts.identity['red']
        assert pipeline.luts.identity['rgb']

    def test_curve_changes_output(self, flat_image):
        params = CurveChange(CurveChannel.RGB, ((0, 0), (0.5, 0.8), (1, 1))).apply(create_default())
        with ColorPipeline() as pipe:
            pipe.set_source(flat_image)
            frame = pipe.render_to_buffer(params)
        assert frame[0, 0, 0] > 118


class TestTargetArena:
    """Test ping-pong target discipline."""

    def test_pass_may_not_write_its_input(self):
        tracker = ResourceTracker()
        arena = TargetArena(tracker, 4, 4)
        with pytest.raises(PipelineError):
            arena.run_pass('bad', (0,), 0, lambda cur: cur)
        arena.release()

    def test_other_target(self):
        assert TargetArena.other(0) == 1
        assert TargetArena.other(1) == 0
        with pytest.raises(PipelineError):
            TargetArena.other(TargetArena.BLUR_TEMP)

    def test_shape_mismatch_rejected(self):
        arena = TargetArena(ResourceTracker(), 4, 4)
        with pytest.raises(PipelineError):
            arena.run_pass('bad', (), 0, lambda: np.zeros((2, 2, 3), np.float32))

    def test_invalid_size(self):
        with pytest.raises(PipelineError):
            TargetArena(ResourceTracker(), 0, 5)


class TestLifecycle:
    """Test resource ownership and teardown."""

    def test_release_frees_everything(self, gradient_image):
        tracker = ResourceTracker()
        pipe = ColorPipeline(tracker=tracker)
        pipe.set_source(gradient_image)
        pipe.render_to_buffer(create_default())
        assert tracker.live['target'] == 3
        assert tracker.live['texture'] == 5
        pipe.release()
        assert tracker.total_live == 0
        assert pipe.released

    def test_release_is_idempotent(self):
        tracker = ResourceTracker()
        pipe = ColorPipeline(tracker=tracker)
        pipe.release()
        pipe.release()
        assert tracker.total_live == 0

    def test_set_source_replaces_resources(self, gradient_image, flat_image):
        tracker = ResourceTracker()
        with ColorPipeline(tracker=tracker) as pipe:
            pipe.set_source(gradient_image)
            pipe.set_source(flat_image)
            assert tracker.live['target'] == 3
            assert tracker.live['texture'] == 5
            assert pipe.get_image_dimensions() == (40, 32)

    def test_buffer_render_at_other_size_releases_temp_targets(self, gradient_image):
        tracker = ResourceTracker()
        with ColorPipeline(tracker=tracker) as pipe:
            pipe.set_source(gradient_image)
            frame = pipe.render_to_buffer(create_default(), source=np.full((20, 30, 3), 0.5, np.float32))
            assert frame.shape == (20, 30, 3)
            assert tracker.live['target'] == 3

    def test_clear_source(self, gradient_image):
        with ColorPipeline() as pipe:
            pipe.set_source(gradient_image)
            pipe.clear_source()
            assert pipe.get_image_dimensions() is None

    def test_rejects_non_rgb_source(self):
        with ColorPipeline() as pipe:
            with pytest.raises(ValueError):
                pipe.set_source(np.zeros((4, 4), np.float32))

    def test_released_pipeline_rejects_use(self, gradient_image):
        pipe = ColorPipeline()
        pipe.release()
        with pytest.raises(PipelineError):
            pipe.set_source(gradient_image)

    def test_compile_failure_releases_compiled_programs(self):
        tracker = ResourceTracker()
        programs = {'main': MainProgram(), 'broken': BrokenProgram(), 'output': OutputProgram()}
        with pytest.raises(ProgramCompileError) as exc:
            ColorPipeline(programs=programs, tracker=tracker)
        assert 'broken' in str(exc.value)
        assert tracker.total_live == 0
        assert tracker.allocated['program'] == 1

    def test_blend_without_blend_function_fails(self):
        tracker = ResourceTracker()
        with pytest.raises(ProgramCompileError):
            ColorPipeline(programs={'main': MainProgram(), 'x': BrokenBlend(),
                                    'output': OutputProgram()}, tracker=tracker)
        assert tracker.total_live == 0

    def test_missing_required_program(self):
        tracker = ResourceTracker()
        with pytest.raises(PipelineError):
            ColorPipeline(programs={'main': MainProgram()}, tracker=tracker)
        assert tracker.total_live == 0

    def test_over_release_detected(self):
        tracker = ResourceTracker()
        with pytest.raises(PipelineError):
            tracker.release('texture')


class TestDisplaySurface:
    """Test frame presentation."""

    def test_fit_and_centre(self):
        surface = DisplaySurface(100, 100)
        frame = np.full((50, 100, 3), 200, np.uint8)
        region = surface.present(frame)
        assert region == Region(0, 25, 100, 50)
        assert surface.pixels[50, 50, 0] == 200
        assert surface.pixels[5, 50, 0] == 0

    def test_zoom_fills_surface(self):
        surface = DisplaySurface(100, 100)
        region = surface.present(np.full((50, 100, 3), 10, np.uint8), zoom=4.0)
        assert region == Region(0, 0, 100, 100)

    def test_pan_moves_image_off_surface(self):
        surface = DisplaySurface(100, 100)
        region = surface.present(np.full((100, 100, 3), 10, np.uint8), pan=(500, 0))
        assert region.empty

    def test_read_region(self):
        surface = DisplaySurface(20, 10)
        surface.present(np.full((10, 20, 3), 7, np.uint8))
        assert surface.read_region(Region(0, 0, 5, 4)).shape == (4, 5, 3)
        assert surface.read_region().shape == (10, 20, 3)

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            DisplaySurface(0, 10)
