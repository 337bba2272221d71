"""sessionreel — interview session assembly from per-question video answers.

Each inbound section of answers is turned into a timed chapter list and a
single merged video, then appended to the respondent's session record.
The first section of a session also gets a thumbnail image.
"""
