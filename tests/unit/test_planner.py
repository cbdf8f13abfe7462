"""Unit tests for chunk planning."""

import pytest

from longscribe.errors import FileTooLargeError
from longscribe.transcription.planner import plan_chunks, planned_capacity


def plan(duration, max_chunk=60.0, overlap=5.0, cap=60.0, min_adv=1.0, max_chunks=500):
    return plan_chunks(duration, max_chunk, overlap, cap, min_adv, max_chunks)


@pytest.mark.unit
class TestPlanChunks:
    """Test cases for plan_chunks."""

    def test_long_recording_scenario(self):
        """125s with 60s chunks and 5s overlap."""
        chunks = plan(125.0, max_chunk=60.0, overlap=5.0, cap=60.0, max_chunks=20)

        assert 3 <= len(chunks) <= 4
        assert [(c.start, c.end) for c in chunks] == [(0.0, 60.0), (55.0, 115.0), (110.0, 125.0)]
        assert chunks[-1].end == 125.0
        assert [c.index for c in chunks] == [0, 1, 2]

    def test_short_recording_is_one_chunk(self):
        chunks = plan(30.0)

        assert len(chunks) == 1
        assert (chunks[0].start, chunks[0].end) == (0.0, 30.0)

    def test_duration_equal_to_chunk_is_one_chunk(self):
        chunks = plan(60.0)

        assert len(chunks) == 1
        assert chunks[0].end == 60.0

    def test_safety_cap_limits_chunk_length(self):
        chunks = plan(200.0, max_chunk=300.0, overlap=0.0, cap=60.0)

        assert all(c.duration <= 60.0 for c in chunks)
        assert chunks[0].end == 60.0

    def test_overlap_capped_at_ten_percent(self):
        chunks = plan(200.0, max_chunk=60.0, overlap=30.0, cap=60.0)

        # 10% of 60s is 6s, so each chunk starts 54s after the previous one
        assert chunks[1].start == pytest.approx(54.0)
        assert chunks[2].start == pytest.approx(108.0)

    def test_overlap_larger_than_chunk_still_advances(self):
        chunks = plan(50.0, max_chunk=10.0, overlap=100.0, cap=10.0, min_adv=1.0)

        starts = [c.start for c in chunks]
        assert all(b > a for a, b in zip(starts, starts[1:]))
        assert chunks[-1].end == 50.0

    def test_min_advancement_floor(self):
        # Tiny chunks: the 10% overlap cap still leaves less than min advancement
        chunks = plan(5.0, max_chunk=0.5, overlap=0.5, cap=0.5, min_adv=0.5)

        starts = [c.start for c in chunks]
        assert all(b - a >= 0.5 - 1e-9 for a, b in zip(starts, starts[1:]))

    def test_min_advancement_longer_than_chunk_leaves_no_gaps(self):
        chunks = plan(5.0, max_chunk=0.5, overlap=0.0, cap=60.0, min_adv=1.0, max_chunks=1000)

        assert [(c.start, c.end) for c in chunks] == [(i * 0.5, (i + 1) * 0.5) for i in range(10)]
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start <= previous.end
        assert chunks[-1].end == 5.0

    def test_capacity_with_min_advancement_longer_than_chunk(self):
        assert planned_capacity(0.5, 0.0, 60.0, 1.0, 10) == pytest.approx(5.0)

    @pytest.mark.parametrize("duration", [0.5, 1.0, 59.9, 60.0, 61.0, 125.0, 600.3, 3599.0])
    @pytest.mark.parametrize("max_chunk,overlap", [(5.0, 0.0), (30.0, 2.0), (60.0, 5.0), (60.0, 59.0)])
    def test_plan_covers_recording_without_gaps(self, duration, max_chunk, overlap):
        chunks = plan(duration, max_chunk=max_chunk, overlap=overlap, cap=60.0, max_chunks=1000)

        assert chunks
        assert chunks[0].start == 0.0
        assert chunks[-1].end == pytest.approx(duration)
        for chunk in chunks:
            assert chunk.start < chunk.end
        for previous, current in zip(chunks, chunks[1:]):
            assert current.start > previous.start
            assert current.start <= previous.end
            assert current.index == previous.index + 1

    def test_too_many_chunks_raises_file_too_large(self):
        with pytest.raises(FileTooLargeError) as exc_info:
            plan(3600.0, max_chunk=60.0, overlap=2.0, cap=60.0, max_chunks=20)

        assert exc_info.value.duration == 3600.0
        assert exc_info.value.max_duration == pytest.approx(60.0 + 19 * 58.0)
        assert exc_info.value.remediation_hint

    def test_capacity_boundary_fits_exactly(self):
        capacity = planned_capacity(60.0, 2.0, 60.0, 1.0, 3)
        assert capacity == pytest.approx(176.0)

        chunks = plan(capacity, max_chunk=60.0, overlap=2.0, cap=60.0, max_chunks=3)
        assert len(chunks) == 3
        assert chunks[-1].end == pytest.approx(capacity)

        with pytest.raises(FileTooLargeError):
            plan(capacity + 1.0, max_chunk=60.0, overlap=2.0, cap=60.0, max_chunks=3)

    @pytest.mark.parametrize("kwargs", [
        {"duration": 0.0},
        {"duration": -1.0},
        {"duration": 10.0, "max_chunk": 0.0},
        {"duration": 10.0, "cap": 0.0},
        {"duration": 10.0, "overlap": -1.0},
        {"duration": 10.0, "min_adv": 0.0},
        {"duration": 10.0, "max_chunks": 0},
    ])
    def test_invalid_arguments(self, kwargs):
        with pytest.raises(ValueError):
            plan(**kwargs)
