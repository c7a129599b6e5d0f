"""
Tests for the conversion pipeline
"""
import multiprocessing
import threading
import time

import pytest
import numpy as np


class TestPipelineConfig:
    """Test pipeline configuration"""

    def test_default_settings(self):
        from svgtrace.config import Settings

        config = Settings()

        assert config.max_upload_bytes == 200 * 1024 * 1024
        assert config.max_megapixels == 80
        assert config.max_side == 12000
        assert "image/png" in config.allowed_mime_types
        assert "image/jpeg" in config.allowed_mime_types
        assert config.flat_sample_step == 53

    def test_env_override(self, monkeypatch):
        from svgtrace.config import Settings

        monkeypatch.setenv("SVGTRACE_MAX_SIDE", "500")
        assert Settings().max_side == 500


class TestConvert:
    """Test end-to-end conversion"""

    def test_uniform_white_edge_scenario(self, white_png):
        from svgtrace import EdgeConfig, TraceParams, convert

        result = convert(
            white_png,
            "image/png",
            TraceParams(),
            edge=EdgeConfig(blur_sigma=0.8, edge_boost=1.0),
        )

        assert result.fell_back is True
        assert result.preprocess == "edge"
        assert 'viewBox="0 0 500 500"' in result.svg
        assert (result.width, result.height) == (500, 500)
        root = result.svg[:result.svg.index(">") + 1]
        assert "width=" not in root
        assert "height=" not in root

    def test_square_plain_path(self, square_png):
        from svgtrace import BackgroundSpec, TraceParams, convert

        result = convert(
            square_png,
            "image/png",
            TraceParams(line_color="#0ea5e9"),
            background=BackgroundSpec(transparent=False, color="#fafafa"),
        )

        assert result.fell_back is False
        assert 'viewBox="0 0 64 64"' in result.svg
        assert 'fill="#0ea5e9"' in result.svg
        assert result.svg.count("<rect") == 1
        assert '<rect x="0" y="0" width="64" height="64" fill="#fafafa"/>' in result.svg
        assert set(result.timing) == {"validation", "decode", "preprocessing", "tracing", "postprocessing"}

    def test_square_edge_path(self, square_png):
        from svgtrace import EdgeConfig, convert

        result = convert(square_png, "image/png", edge=EdgeConfig(blur_sigma=0, edge_boost=1.0))
        assert result.svg.startswith("<svg")
        assert result.to_dict().keys() == {"svg", "width", "height"}

    def test_jpeg_accepted(self, encode_image, square_pixels):
        from svgtrace import convert

        result = convert(encode_image(square_pixels, "JPEG"), "image/jpeg")
        assert (result.width, result.height) == (64, 64)

    def test_wrong_mime_rejected(self, square_png):
        from svgtrace import UnsupportedMediaError, convert

        with pytest.raises(UnsupportedMediaError) as exc:
            convert(square_png, "image/gif")
        assert exc.value.status_code == 415

    def test_oversize_rejected_before_decode(self, png_header, monkeypatch):
        from svgtrace import InputValidationError, Pipeline

        pipeline = Pipeline()

        def no_decode(data):
            raise AssertionError("pixel data must not be decoded")

        monkeypatch.setattr(pipeline.loader, "decode", no_decode)

        with pytest.raises(InputValidationError) as exc:
            pipeline.run(png_header(13000, 8000), "image/png")
        assert "13000×8000" in exc.value.message
        assert "12000px" in exc.value.message

    def test_header_beyond_pillow_bomb_limit_gets_limit_error(self, png_header):
        from svgtrace import InputValidationError, Pipeline

        with pytest.raises(InputValidationError) as exc:
            Pipeline().run(png_header(20000, 10000), "image/png")
        assert exc.value.status_code == 413
        assert "20000×10000" in exc.value.message
        assert "200.0 MP" in exc.value.message

    def test_garbage_bytes_rejected_as_unreadable(self):
        from svgtrace import UnsupportedMediaError, convert

        with pytest.raises(UnsupportedMediaError, match="decode"):
            convert(b"\x89PNG not really", "image/png")

    def test_trace_failure_propagates(self, square_png, monkeypatch):
        from svgtrace import Pipeline, TraceFailure

        pipeline = Pipeline()

        def broken(raster, params):
            raise RuntimeError("tracer crashed")

        monkeypatch.setattr(pipeline.tracer, "trace", broken)
        with pytest.raises(TraceFailure, match="tracer crashed") as exc:
            pipeline.run(square_png, "image/png")
        assert exc.value.status_code == 500

    def test_edge_failure_traces_original(self, square_png, monkeypatch):
        from svgtrace import EdgeConfig, Pipeline

        pipeline = Pipeline()

        def broken(image, cfg):
            raise RuntimeError("no blur today")

        monkeypatch.setattr(pipeline.edge_detector, "process", broken)
        result = pipeline.run(square_png, "image/png", edge=EdgeConfig())
        assert "<path" in result.svg

    def test_cancelled_before_start(self, square_png):
        from svgtrace import ConversionCancelled, convert

        cancel = threading.Event()
        cancel.set()
        with pytest.raises(ConversionCancelled):
            convert(square_png, "image/png", cancel=cancel)

    def test_cancel_between_stages(self, square_png):
        from svgtrace import ConversionCancelled, Pipeline, PipelineStage

        cancel = threading.Event()
        seen = []

        def on_progress(stage, message):
            seen.append(stage)
            if stage == PipelineStage.PREPROCESSING:
                cancel.set()

        pipeline = Pipeline()
        pipeline.set_progress_callback(on_progress)
        with pytest.raises(ConversionCancelled):
            pipeline.run(square_png, "image/png", cancel=cancel)
        assert PipelineStage.TRACING not in seen

    def test_rgba_input(self, encode_image):
        from svgtrace import convert

        pixels = np.zeros((32, 32, 4), dtype=np.uint8)
        pixels[8:24, 8:24, 3] = 255  # opaque black square on transparent
        result = convert(encode_image(pixels), "image/png")
        assert "<path" in result.svg

    def test_cancel_during_tracing_stops_tracer(self, encode_image):
        from svgtrace import ConversionCancelled, Pipeline, PipelineStage, TraceParams

        # Tracing this much noise takes far longer than the test allows
        noise = np.random.default_rng(0).integers(0, 256, (600, 600), dtype=np.uint8)
        cancel = threading.Event()
        seen = []

        def on_progress(stage, message):
            seen.append(stage)
            if stage == PipelineStage.TRACING:
                threading.Timer(0.5, cancel.set).start()

        pipeline = Pipeline()
        pipeline.set_progress_callback(on_progress)
        start = time.monotonic()
        with pytest.raises(ConversionCancelled):
            pipeline.run(encode_image(noise), "image/png", params=TraceParams(threshold=128, turd_size=0), cancel=cancel)

        assert time.monotonic() - start < 10
        assert PipelineStage.TRACING in seen
        assert PipelineStage.POSTPROCESSING not in seen
        assert multiprocessing.active_children() == []

    def test_cancellable_run_traces_in_child(self, square_png):
        from svgtrace import Pipeline

        pipeline = Pipeline()
        isolated = pipeline.run(square_png, "image/png", cancel=threading.Event())
        in_process = pipeline.run(square_png, "image/png")
        assert isolated.svg == in_process.svg
