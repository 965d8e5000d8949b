"""
User agent parsing for device, browser and OS breakdowns.
"""

from typing import Dict, Optional


def parse_user_agent(user_agent: Optional[str]) -> Dict[str, str]:
    """Parse user agent string to extract browser and device information.

    Args:
        user_agent: User agent string

    Returns:
        Dictionary with browser, os, and device information
    """
    if not user_agent:
        return {"browser": "Unknown", "os": "Unknown", "device": "Unknown"}

    browser = "Unknown"
    os_info = "Unknown"
    device = "Desktop"

    # Browser detection; Edge and Opera also carry "Chrome"
    if "Edg" in user_agent:
        browser = "Edge"
    elif "OPR" in user_agent or "Opera" in user_agent:
        browser = "Opera"
    elif "Firefox" in user_agent:
        browser = "Firefox"
    elif "Chrome" in user_agent:
        browser = "Chrome"
    elif "Safari" in user_agent:
        browser = "Safari"

    # OS detection; Android and iOS UAs also mention Linux / Mac OS X
    if "Android" in user_agent:
        os_info = "Android"
    elif "iPhone" in user_agent or "iPad" in user_agent:
        os_info = "iOS"
    elif "Windows" in user_agent:
        os_info = "Windows"
    elif "Mac OS X" in user_agent or "MacOS" in user_agent:
        os_info = "macOS"
    elif "Linux" in user_agent:
        os_info = "Linux"

    # Device detection
    if "iPad" in user_agent or "Tablet" in user_agent:
        device = "Tablet"
    elif "Mobile" in user_agent or "iPhone" in user_agent or "Android" in user_agent:
        device = "Mobile"

    return {
        "browser": browser,
        "os": os_info,
        "device": device
    }
