"""Domain enumerations for the Contest Tracker platform."""
from __future__ import annotations

from enum import Enum


class Platform(str, Enum):
    CODEFORCES = "Codeforces"
    LEETCODE = "LeetCode"
    HACKEREARTH = "HackerEarth"
    TOPCODER = "TopCoder"


class ContestStatus(str, Enum):
    UPCOMING = "Upcoming"
    ONGOING = "On-going"
    PAST = "Past"
