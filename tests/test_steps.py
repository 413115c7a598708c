"""Tests for image steps and the step pipeline."""

import pytest
from PIL import Image

from errors import ImageOperationError
from imaging import Angle, Color, Direction, ImageRef, Interpretation, LabelParams, load_image_from_buffer
from imaging.steps import (
    AutorotateStep,
    BlurStep,
    ColorspaceStep,
    CropStep,
    FlattenStep,
    FlipStep,
    IccTransformStep,
    ImageStep,
    InvertStep,
    LabelStep,
    Pipeline,
    ResizeStep,
    RotateStep,
    ThumbnailStep,
)


class TestStepInterface:
    def test_base_class_is_abstract(self):
        with pytest.raises(TypeError):
            ImageStep()

    @pytest.mark.parametrize(
        "step,name",
        [
            (ResizeStep(scale=0.5), "resize(0.5)"),
            (ThumbnailStep(width=32, height=16), "thumbnail(32x16)"),
            (RotateStep(angle=Angle.D90), "rotate(90)"),
            (FlipStep(direction=Direction.VERTICAL), "flip(vertical)"),
            (CropStep(left=1, top=2, width=3, height=4), "crop(3x4+1+2)"),
            (ColorspaceStep(interpretation=Interpretation.CMYK), "colorspace(cmyk)"),
            (BlurStep(sigma=1.5), "blur(1.5)"),
            (InvertStep(), "invert"),
        ],
    )
    def test_names(self, step, name):
        assert step.name == name

    def test_frozen_steps(self):
        step = ResizeStep(scale=2)
        with pytest.raises(AttributeError):
            step.scale = 3


class TestMetadata:
    def test_autorotate_applied(self, rotated_jpeg_bytes):
        step = AutorotateStep()
        ref = load_image_from_buffer(rotated_jpeg_bytes)
        step.apply(ref)
        assert step.get_metadata() == {"orientation": 6, "step_status": "applied"}

    def test_autorotate_declined(self, rgb_image):
        step = AutorotateStep()
        step.apply(ImageRef(rgb_image))
        assert step.get_metadata()["step_status"] == "declined"

    def test_flatten_declines_opaque(self, rgb_image):
        step = FlattenStep()
        step.apply(ImageRef(rgb_image))
        assert step.get_metadata()["step_status"] == "declined"

    def test_flatten_applies_with_alpha(self, rgba_image):
        step = FlattenStep(background=Color(255, 255, 255))
        ref = ImageRef(rgba_image)
        step.apply(ref)
        assert step.get_metadata()["step_status"] == "applied"
        assert not ref.has_alpha


class TestPipeline:
    def test_runs_steps_in_order(self, rgb_image):
        pipeline = Pipeline(steps=[
            ResizeStep(scale=0.5),
            RotateStep(angle=Angle.D90),
            CropStep(left=0, top=0, width=10, height=10),
        ])
        result = pipeline.run(ImageRef(rgb_image))
        assert result.original_size == (64, 48)
        assert [s.size_after for s in result.steps] == [(32, 24), (24, 32), (10, 10)]
        assert [s.size_before for s in result.steps] == [(64, 48), (32, 24), (24, 32)]
        assert result.final_size == (10, 10)
        assert result.ref.width == 10

    def test_empty_pipeline(self, rgb_image):
        result = Pipeline(steps=[]).run(ImageRef(rgb_image))
        assert result.final_size == (64, 48)
        assert result.steps == []
        assert len(Pipeline(steps=[])) == 0

    def test_metadata_lookup(self, rotated_jpeg_bytes):
        result = Pipeline(steps=[AutorotateStep(), FlattenStep()]).run(
            load_image_from_buffer(rotated_jpeg_bytes)
        )
        assert result.get_metadata("orientation") == 6
        assert result.get_metadata("missing") is None
        # Later steps override earlier ones
        assert result.all_metadata["step_status"] == "declined"
        assert [s.status for s in result.steps] == ["applied", "declined"]

    def test_mode_is_recorded(self, rgb_image):
        result = Pipeline(steps=[ColorspaceStep(interpretation=Interpretation.B_W)]).run(
            ImageRef(rgb_image)
        )
        assert result.steps[0].mode_after == "L"

    def test_failing_step_propagates(self, rgb_image):
        pipeline = Pipeline(steps=[CropStep(left=100, top=0, width=10, height=10)])
        with pytest.raises(ImageOperationError):
            pipeline.run(ImageRef(rgb_image))

    def test_every_step_runs(self, rgba_image):
        steps = [
            AutorotateStep(),
            ThumbnailStep(width=32, height=32),
            FlipStep(direction=Direction.HORIZONTAL),
            FlattenStep(),
            IccTransformStep(output_profile="srgb"),
            BlurStep(sigma=0.8),
            InvertStep(),
            LabelStep(params=LabelParams(text="x")),
            ColorspaceStep(interpretation=Interpretation.B_W),
        ]
        pipeline = Pipeline(steps=steps)
        assert list(pipeline) == steps
        result = pipeline.run(ImageRef(rgba_image))
        assert result.final_size == (32, 24)
        assert result.ref.mode == "L"
        assert result.ref.has_icc_profile


def test_label_step_draws(rgb_image):
    ref = ImageRef(Image.new("RGB", (40, 20)))
    LabelStep(params=LabelParams(text="x", color=Color(255, 255, 255))).apply(ref)
    assert ref.image.getbbox() is not None
