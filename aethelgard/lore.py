"""Bundled world text, used whenever the store has no lore or archives yet."""

WORLD_NAME = "Aethelgard"

WORLD_LORE = """\
WORLD: Aethelgard, the Ancient Lands

GEOGRAPHY AND CITIES:
1. North: the Frostfang. Home of the barbarian clans. Main settlement: Blackwinter Keep. Endless snow and storms.
2. Centre: the Golden Plains. Heart of the Empire. Capital: Solaris, famous for its white walls and golden domes. Centre of trade.
3. South: the Ember Marshes. Misty, dangerous, full of venomous creatures. Home of the lawless city of Exile's Harbour.
4. East: the Crystal Forest. Trees with leaves like glass. The elf-like Wardens of Light live here, in the city of Lumina.
5. West: the Iron Mountains. Dwarven smiths and deep mines. City: Anvil.

HISTORY:
- Five hundred years ago came the Great Collapse: a violet meteor fell from the sky and broke the weave of magic.
- This is the Age of Rebirth. Magic is slowly returning, but it is unstable.
- The Empire is at war with the dark cults of the south.

RULES OF THE WORLD:
- Common folk fear those who use magic.
- Gold coin is the main currency.
- A secret guild, the Shadow Walkers, carries messages between the cities.

NOTES FOR THE NARRATOR:
- Never leave these lands or invent new capitals.
- Keep climate and atmosphere consistent with the player's region.
- NPC names should fit their region: harsh in the north, exotic in the south.
"""

SESSION_ARCHIVES = """\
[Age of Rebirth] Rumours spread of an amulet lost in the northern passes.
[Age of Rebirth] Dark clouds gather over the Ember Marshes; the southern cults grow bolder.
"""

ART_STYLE = (
    "World setting: Aethelgard fantasy realm. Art style: high fantasy digital painting, "
    "detailed textures, dramatic lighting, consistent character design, cinematic composition."
)
