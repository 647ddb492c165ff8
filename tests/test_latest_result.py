import threading
import unittest
import sys
import os

# Add path to source
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from handrehab.app.latest_result import LatestResultSlot
import hand_fixtures as hf


class TestLatestResultSlot(unittest.TestCase):
    def test_empty_slot(self):
        self.assertEqual(LatestResultSlot().take(), (False, None))

    def test_newest_result_wins(self):
        slot = LatestResultSlot()
        first, second = hf.frame(hf.fist()), hf.frame(hf.open_hand())
        slot.publish(first)
        slot.publish(second)
        available, frame = slot.take()
        self.assertTrue(available)
        self.assertIs(frame, second)
        self.assertEqual(slot.dropped, 1)
        self.assertEqual(slot.take(), (False, None))

    def test_no_hand_is_still_a_result(self):
        slot = LatestResultSlot()
        slot.publish(None)
        self.assertEqual(slot.take(), (True, None))

    def test_concurrent_publish(self):
        slot = LatestResultSlot()
        frames = [hf.frame(hf.fist()) for _ in range(50)]

        def producer():
            for f in frames:
                slot.publish(f)

        t = threading.Thread(target=producer)
        t.start()
        t.join()
        available, frame = slot.take()
        self.assertTrue(available)
        self.assertIs(frame, frames[-1])
        self.assertEqual(slot.dropped, 49)


if __name__ == '__main__':
    unittest.main()
