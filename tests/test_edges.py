import collections
import unittest

from hlscdn.edges import EDGE_LOCATIONS, EdgeLocation, make_selector


class TestEdgeSelectors(unittest.TestCase):

    def testRoundRobinCycles(self):
        sel = make_selector("round_robin")
        names = [sel.select().name for _ in range(8)]
        order = [e.name for e in EDGE_LOCATIONS]
        self.assertEqual(names, order + order)

    def testRandomIsReproducibleWithSeed(self):
        a = make_selector("random", seed=7)
        b = make_selector("random", seed=7)
        self.assertEqual([a.select().name for _ in range(20)], [b.select().name for _ in range(20)])

    def testWeightedFollowsCapacity(self):
        edges = [EdgeLocation("a", 1, 0.5), EdgeLocation("b", 1, 0.25), EdgeLocation("c", 1, 0.25)]
        sel = make_selector("weighted", edges)
        picks = [sel.select().name for _ in range(100)]
        self.assertEqual(collections.Counter(picks), {"a": 50, "b": 25, "c": 25})
        self.assertEqual(picks[:4], ["a", "b", "c", "a"])

    def testFixed(self):
        sel = make_selector("fixed", fixed_edge="eu-west")
        self.assertEqual({sel.select("10.0.0.1").name for _ in range(5)}, {"eu-west"})

    def testFixedUnknownEdge(self):
        with self.assertRaises(ValueError):
            make_selector("fixed", fixed_edge="mars-north")

    def testUnknownSelector(self):
        with self.assertRaises(ValueError):
            make_selector("geo")

    def testEdgeStatus(self):
        self.assertEqual(EdgeLocation("x", 5, 0.8).status, "healthy")
        self.assertEqual(EdgeLocation("x", 5, 0.2).status, "degraded")


if __name__ == "__main__":
    unittest.main()
