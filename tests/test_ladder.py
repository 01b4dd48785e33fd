import json
import os
import tempfile
import unittest

from hlscdn.ladder import (
    DEVICE_MAX_QUALITY,
    QUALITY_LADDER,
    device_cap,
    filter_qualities,
    is_viable,
    ladder_from_json,
    playable_qualities,
    recommend_quality,
)


BANDWIDTHS = [0, 100_000, 300_000, 1_000_000, 2_500_000, 5_000_000, 10_000_000, 50_000_000]


class TestDeviceFilter(unittest.TestCase):

    def testLadderIdsAreDenseAndAscending(self):
        self.assertEqual([q.id for q in QUALITY_LADDER], list(range(8)))
        bitrates = [q.bitrate_bps for q in QUALITY_LADDER]
        self.assertEqual(bitrates, sorted(bitrates))

    def testCapPerDevice(self):
        expected = {"mobile": 5, "tablet": 6, "smarttv": 7, "desktop": 7}
        for device, cap in expected.items():
            for bw in BANDWIDTHS:
                out = filter_qualities(device, bw)
                self.assertTrue(all(q.id <= cap for q in out), (device, bw))
        self.assertEqual(DEVICE_MAX_QUALITY, expected)

    def testUnknownDeviceIsUnrestricted(self):
        self.assertEqual(device_cap("toaster"), 7)
        self.assertEqual(device_cap(None), 7)
        self.assertEqual(filter_qualities("toaster", 100_000_000)[-1].id, 7)

    def testBitrateBudget(self):
        for bw in BANDWIDTHS:
            for q in filter_qualities("desktop", bw):
                self.assertLessEqual(q.bitrate_bps, 1.5 * bw)

    def testOrderPreserved(self):
        out = filter_qualities("tablet", 100_000_000)
        self.assertEqual([q.id for q in out], [0, 1, 2, 3, 4, 5, 6])

    def testBudgetBoundaryIsInclusive(self):
        # 2_000_000 * 1.5 == 3_000_000 exactly -> id 4 admitted
        out = filter_qualities("desktop", 2_000_000)
        self.assertEqual(out[-1].id, 4)

    def testEmptyFilterButPlayableFloor(self):
        self.assertEqual(filter_qualities("mobile", 100_000), [])
        floor = playable_qualities("mobile", 100_000)
        self.assertEqual([q.id for q in floor], [0])

    def testRecommendQuality(self):
        self.assertEqual(recommend_quality(5_000_000).id, 4)    # 3.5M budget
        self.assertEqual(recommend_quality(100_000).id, 0)
        self.assertEqual(recommend_quality(30_000_000).id, 7)

    def testViable(self):
        self.assertTrue(is_viable(QUALITY_LADDER[4], 5_000_000))
        # 0.9 * 5M == 4.5M exactly -> id 5 is on the inclusive boundary
        self.assertTrue(is_viable(QUALITY_LADDER[5], 5_000_000))
        self.assertFalse(is_viable(QUALITY_LADDER[6], 5_000_000))

    def testShortLadderUnderDeviceCap(self):
        short = QUALITY_LADDER[:3]
        self.assertEqual(filter_qualities("mobile", 100_000_000, short), short)
        self.assertEqual(recommend_quality(100_000_000, short).id, 2)


class TestLadderLoader(unittest.TestCase):

    def _write(self, obj):
        fd, path = tempfile.mkstemp(suffix=".json")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(obj, f)
        self.addCleanup(os.remove, path)
        return path

    def testLoadsAndAssignsIds(self):
        path = self._write([
            {"bitrate_bps": 500000, "resolution": "640x360", "fps": 30, "codec": "avc1.42001e"},
            {"bitrate_bps": 2500000, "resolution": "1280x720", "fps": 30, "codec": "avc1.640028"},
        ])
        ladder = ladder_from_json(path)
        self.assertEqual([q.id for q in ladder], [0, 1])
        self.assertEqual(ladder[1].resolution, "1280x720")

    def testRejectsDescendingBitrates(self):
        path = self._write([
            {"bitrate_bps": 2500000, "resolution": "1280x720", "fps": 30, "codec": "a"},
            {"bitrate_bps": 500000, "resolution": "640x360", "fps": 30, "codec": "a"},
        ])
        with self.assertRaises(ValueError):
            ladder_from_json(path)

    def testRejectsBadResolution(self):
        path = self._write([{"bitrate_bps": 1, "resolution": "hd", "fps": 30, "codec": "a"}])
        with self.assertRaises(ValueError):
            ladder_from_json(path)

    def testRejectsEmpty(self):
        with self.assertRaises(ValueError):
            ladder_from_json(self._write([]))


if __name__ == "__main__":
    unittest.main()
