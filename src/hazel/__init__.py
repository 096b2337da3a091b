"""Hazel — decision lifecycle bot for sociocratic circle meetings.

Decisions live as embeds in a Discord channel, each carrying a ``meta_data``
control block. Three timed lanes move them along:

    normalization   typo fixing and date resolution (opt-in per decision)
    alignment       one-shot check against the vision and handbook channels
    follow-up       repost to the circle backlog when the follow-up date nears
"""
