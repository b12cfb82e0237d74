"""Static game data: roster, scenes, items, chapters, events, endings.

Every table is keyed by id and treated as read-only. The roster is the one
exception: build_characters() returns a roster whose 叶青霜 takes the gender
opposite the player's.

Day/period model:
  6 periods per day, MAX_DAYS days. Chapters partition 1..MAX_DAYS.
  Forced events fire once on (trigger_day, trigger_period?).
  The new-moon countdown starts at NEW_MOON_COUNTDOWN and drops once per day.
"""

from __future__ import annotations

from pydantic import BaseModel

from .models import (
    Chapter,
    Character,
    Ending,
    EndingCondition,
    ForcedEvent,
    Gender,
    Item,
    Scene,
    StatMeta,
    StatRequirement,
    TimePeriod,
    UnlockCondition,
)

MAX_DAYS = 30
MAX_ACTION_POINTS = 6
NEW_MOON_COUNTDOWN = 15
STAT_MIN = 0
STAT_MAX = 100

DEFAULT_PLAYER_NAME = "灵芝"
DEFAULT_SCENE = "cave"
STARTING_SCENES = ("cave", "outskirts")
STARTER_INVENTORY = {"concealment-talisman": 3}
FRAGMENT_ITEM = "pool-fragment"
FRAGMENTS_NEEDED = 3

# Forced event that exposes the true form on the new-moon night.
NEW_MOON_EVENT = "new-moon-night"
# Recorded when the concealment talisman is burned on the new-moon day,
# before the exposure fires.
NEW_MOON_SHELTER_EVENT = "new-moon-concealed"

STORY_INFO = {
    "genre": "仙侠修真",
    "title": "灵草修仙录",
    "subtitle": "Spirit Herb Chronicle · 修仙文字冒险",
    "description": (
        "天元历三千七百年，一株千年九叶灵芝在山野灵气中孕育千年，终于化形成人。"
        "你睁开眼睛，第一次以人类的视角打量这个世界——"
        "但很快你就会发现，这个世界对\"灵草成精\"的态度，远比你想象的更加危险..."
    ),
    "goals": [
        "在 30 天内找到传说中的化形池",
        "在三方势力中周旋求存",
        "在朔月之夜守住灵草身份的秘密",
        "做出最终选择——成人、成妖、还是寻找第三条路",
    ],
}

# World framing handed to the narrator on every turn.
GAME_SCRIPT = """\
### 世界观
天元大陆，修仙者以灵草灵药炼丹求长生。灵草成精者被视为至宝，一旦暴露便会遭到追捕、炼化。
玩家是一株刚刚化形的千年九叶灵芝，必须隐藏身份，在30天内找到传说中的化形池。
每逢朔月之夜，灵草成精者会短暂恢复本体，这是最危险的时刻。

### 三方势力
- 丹辰子：药王谷谷主，正道宗主，暗中觊觎玩家本体。
- 叶青霜：散修剑修，同为灵草成精者，外冷内热。
- 赤璃：妖族少主，半妖半人，想让玩家成为妖族一员。

### 输出格式
1. 以第二人称叙述玩家所见所闻，300字以内。
2. 角色发言单独成行，以【角色名】开头，例如：【叶青霜】（皱眉）"别乱跑。"
3. 数值变化单独成行，例如：【叶青霜 好感+5】、【丹辰子 觊觎+10】。只使用角色已有的数值。
4. 获得道具单独成行，例如：【获得 化形池线索碎片】。
5. 结尾给出4个编号选项，每行一个：
   1. ……
   2. ……
   3. ……
   4. ……
"""

PERIODS: list[TimePeriod] = [
    TimePeriod(index=0, name="清晨", icon="🌅", hours="05:00-08:59"),
    TimePeriod(index=1, name="上午", icon="☀️", hours="09:00-11:59"),
    TimePeriod(index=2, name="中午", icon="🌞", hours="12:00-13:59"),
    TimePeriod(index=3, name="下午", icon="⛅", hours="14:00-16:59"),
    TimePeriod(index=4, name="傍晚", icon="🌇", hours="17:00-19:59"),
    TimePeriod(index=5, name="深夜", icon="🌙", hours="20:00-04:59"),
]

LAST_PERIOD = len(PERIODS) - 1


# ── Characters ───────────────────────────────────────────

DANCHENZI = Character(
    id="danchenzi",
    name="丹辰子",
    avatar="丹",
    full_image="/characters/danchenzi.jpg",
    gender="male",
    age=800,
    title="药王谷谷主",
    description=(
        "仙风道骨的正道宗主，被誉为\"丹道第一人\"。表面温和慈祥，实则心狠手辣——"
        "他也是灵草成精，需吞噬同类维持人形。"
    ),
    personality="道貌岸然 | 贪婪偏执 + 虚伪阴险 + 不怒自威",
    speaking_style="温文尔雅，喜用典故和比喻，长句为主，排比反问，嘴角挂着从不达眼底的笑意",
    secret="曾经也是灵草成精，通过吞噬其他灵草维持人形，朔月之夜也会短暂恢复本体",
    trigger_points=["在他面前提\"灵草\"、\"化形\"", "试图揭穿他的真实身份", "拒绝他的\"好意\""],
    behavior_patterns="觊觎度<60表面温和暗中观察，60-80派人接触试探，>80不择手段直接抓捕",
    theme_color="#b45309",
    join_day=1,
    stat_metas=[
        StatMeta(key="coveting", label="觊觎", color="#b45309", icon="👁", auto_increment=5),
    ],
    initial_stats={"coveting": 50},
)

CHILI = Character(
    id="chili",
    name="赤璃",
    avatar="赤",
    full_image="/characters/chili.jpg",
    gender="male",
    age=200,
    title="妖族少主",
    description=(
        "邪魅狂狷的妖族少主，半妖半人的混血。琥珀色瞳孔在暗处发光，额头有妖族王室红纹。"
        "真心想帮你，代价是成为妖族一员。"
    ),
    personality="热情偏执 | 孤独半妖 + 真诚但偏执 + 认为妖族才是灵物归宿",
    speaking_style="慵懒散漫，长短句结合，感叹句多，偶尔认真时眼神锐利如野兽",
    secret="半妖半人的混血，在两边都不被接纳。知道化形池真相但认为成为妖比做人更好",
    trigger_points=["提及\"人\"或\"人类\"", "伤害妖族", "否定妖族的生活方式"],
    behavior_patterns="好感<30感兴趣保持距离，30-60友好主动帮助，>60透露妖族秘密",
    theme_color="#ef4444",
    join_day=1,
    stat_metas=[
        StatMeta(key="affection", label="好感", color="#ef4444", icon="❤"),
        StatMeta(key="assimilation", label="同化", color="#7c3aed", icon="🔮"),
    ],
    initial_stats={"affection": 0, "assimilation": 0},
)


def build_yeqingshuang(player_gender: Gender) -> Character:
    """叶青霜 takes the gender opposite the player's, portrait included."""
    is_female = player_gender == "male"
    if is_female:
        description = "清冷如霜的女剑修，如同一柄出鞘的利剑。"
    else:
        description = "冷峻如冰的男剑修，如同一柄藏于鞘中的名剑。"
    description += "百年前的\"七叶雪莲\"成精，已成功化形。看到你就像看到当年的自己。"
    return Character(
        id="yeqingshuang",
        name="叶青霜",
        avatar="叶",
        full_image=f"/characters/yeqingshuang-{'f' if is_female else 'm'}.jpg",
        gender="female" if is_female else "male",
        age=300,
        title="散修剑修",
        description=description,
        personality="外冷内热 | 隐忍守护 + 孤独三百年 + 同类保护欲",
        speaking_style="简洁直接，短句为主，命令句多，偶尔流露的温柔让人心疼",
        secret="百年前的\"七叶雪莲\"成精，已成功化形。知道化形池真相、丹辰子真实身份、朔月之夜的真正意义",
        trigger_points=["提及\"丹辰子\"或\"药王谷\"", "伤害其他灵草成精者", "不真诚"],
        behavior_patterns="好感<30冷漠只提供基本帮助，30-60友好主动提供情报，>60透露自己秘密",
        theme_color="#0ea5e9",
        join_day=1,
        stat_metas=[
            StatMeta(key="affection", label="好感", color="#ef4444", icon="❤"),
            StatMeta(key="trust", label="信任", color="#22c55e", icon="🤝"),
        ],
        initial_stats={"affection": 0, "trust": 0},
    )


def build_characters(player_gender: Gender) -> dict[str, Character]:
    """Roster in display order. The order also breaks global label ties."""
    return {
        "danchenzi": DANCHENZI,
        "yeqingshuang": build_yeqingshuang(player_gender),
        "chili": CHILI,
    }


# ── Scenes ───────────────────────────────────────────────

SCENES: dict[str, Scene] = {
    "cave": Scene(
        id="cave",
        name="隐秘山洞",
        icon="🕳️",
        description="落霞山脉深处的天然山洞，洞顶裂缝透进微弱光线，空气中弥漫着潮湿的土腥味和你自己的药香。",
        background="/scenes/cave.jpg",
        atmosphere="安静、隐秘、安全",
        tags=["藏身处", "初始", "探索"],
    ),
    "outskirts": Scene(
        id="outskirts",
        name="落霞山脉",
        icon="⛰️",
        description="茂密的山林，树木高大遮天蔽日。阳光透过树叶洒下斑驳光影，远处偶有野兽咆哮。自由但危险。",
        background="/scenes/outskirts.jpg",
        atmosphere="自由、危险、机遇并存",
        tags=["野外", "初始", "采集"],
    ),
    "tianjicheng": Scene(
        id="tianjicheng",
        name="天机城",
        icon="🏯",
        description="修仙界的交易中心，街道宽阔建筑林立。各种丹药法宝灵草在此交易，鱼龙混杂，消息灵通。",
        background="/scenes/tianjicheng.jpg",
        atmosphere="繁华、热闹、鱼龙混杂",
        tags=["城市", "交易", "情报"],
        unlock_condition=UnlockCondition(event="meet-yeqingshuang"),
    ),
    "yaowanggu": Scene(
        id="yaowanggu",
        name="药王谷",
        icon="⚗️",
        description="宏伟的山谷中布满药田和炼丹房，常年阳光照耀，浓郁药香混杂炼丹气息。正道圣地，也是你的噩梦之地。",
        background="/scenes/yaowanggu.jpg",
        atmosphere="庄严、危险、诱惑",
        tags=["宗门", "危险", "情报"],
        unlock_condition=UnlockCondition(
            event="danchenzi-invitation",
            stat=StatRequirement(char_id="danchenzi", key="coveting", min=80),
        ),
    ),
    "forest": Scene(
        id="forest",
        name="万妖森林",
        icon="🌲",
        description="茂密的原始森林，阳光几乎无法穿透厚厚树冠。发光的蘑菇点缀深绿，远处传来妖族祭祀歌声。",
        background="/scenes/forest.jpg",
        atmosphere="神秘、危险、诱惑",
        tags=["妖界", "化形池", "秘境"],
        unlock_condition=UnlockCondition(event="chili-proposal"),
    ),
}


# ── Items ────────────────────────────────────────────────

ITEMS: dict[str, Item] = {
    "concealment-talisman": Item(
        id="concealment-talisman",
        name="隐匿符",
        icon="📜",
        type="consumable",
        description="黄色符纸，复杂符文。点燃后化作青烟笼罩全身，暂时掩盖本体气息。",
        max_count=6,
    ),
    "pool-fragment": Item(
        id="pool-fragment",
        name="化形池线索碎片",
        icon="🔮",
        type="collectible",
        description="古老的玉片，上面刻着模糊文字。集齐3片可得知化形池位置。",
        max_count=3,
    ),
    "elder-diary": Item(
        id="elder-diary",
        name="灵草前辈日记",
        icon="📖",
        type="quest",
        description="封面写着\"灵草札记\"的古老书册，记载着前辈灵草的经验和对化形池的警告。",
        max_count=1,
    ),
}


class ItemEffect(BaseModel):
    """Side effect of using an item. A closed table, not scripting."""

    message: str
    stat_deltas: list[tuple[str, str, int]] = []  # (char_id, stat_key, delta)
    special_night_event: str | None = None


ITEM_EFFECTS: dict[str, ItemEffect] = {
    "concealment-talisman": ItemEffect(
        message="你点燃隐匿符，符纸化作一道青烟笼罩全身。本体气息暂时被掩盖。【丹辰子 觊觎-10】",
        stat_deltas=[("danchenzi", "coveting", -10)],
        special_night_event=NEW_MOON_SHELTER_EVENT,
    ),
    "elder-diary": ItemEffect(
        message="你翻开灵草前辈的日记，前辈的字迹映入眼帘——\"化形池...并非你所想的那样...\"",
    ),
    "pool-fragment": ItemEffect(
        message="你摩挲着玉片上模糊的刻痕，隐约感到它在指引某个方向。",
    ),
}


# ── Chapters ─────────────────────────────────────────────

CHAPTERS: list[Chapter] = [
    Chapter(
        id=1,
        name="初化人形",
        day_range=(1, 5),
        description="你刚刚化形成功，对外界一无所知。必须在被发现之前学会生存。",
        objectives=["在落霞山脉生存下来", "学会使用隐匿符", "不被丹辰子的追兵发现"],
        atmosphere="紧张中带着好奇",
    ),
    Chapter(
        id=2,
        name="三方博弈",
        day_range=(6, 15),
        description="丹辰子、叶青霜、赤璃三方势力相继出现，你必须在他们之间周旋。",
        objectives=["在朔月之夜到来前找到庇护所", "从各方获取化形池线索", "理清三方真实目的"],
        atmosphere="紧张、纠结",
    ),
    Chapter(
        id=3,
        name="朔月之夜",
        day_range=(16, 16),
        description="朔月之夜到来，你会短暂恢复九叶灵芝本体形态。最危险的时刻。",
        objectives=["在朔月之夜存活", "不被任何人发现本体", "借朔月感知化形池方位"],
        atmosphere="紧张、绝望、希望",
    ),
    Chapter(
        id=4,
        name="化形之路",
        day_range=(17, 30),
        description="你终于得知化形池的位置，但必须付出巨大代价才能到达。最终抉择在前方等待。",
        objectives=["到达化形池", "做出最终选择", "面对化形池的真相"],
        atmosphere="悲壮、希望",
    ),
]


# ── Forced events ────────────────────────────────────────

FORCED_EVENTS: list[ForcedEvent] = [
    ForcedEvent(
        id="meet-yeqingshuang",
        name="初遇叶青霜",
        trigger_day=3,
        trigger_period=1,
        description="落霞山脉外围，叶青霜正与丹辰子的弟子战斗。你可以选择帮助或趁机逃走。",
    ),
    ForcedEvent(
        id="danchenzi-invitation",
        name="丹辰子的邀请",
        trigger_day=8,
        description="丹辰子派人送来请帖，\"邀请\"你前往药王谷\"做客\"。你感到一阵不寒而栗。",
    ),
    ForcedEvent(
        id="chili-proposal",
        name="赤璃的提议",
        trigger_day=10,
        trigger_period=3,
        description="在天机城偶遇赤璃，他提出带你去万妖森林，用妖族秘法帮你度过朔月之夜。",
    ),
    ForcedEvent(
        id="new-moon-night",
        name="朔月暴露",
        trigger_day=16,
        trigger_period=5,
        description="今夜，月亮不会升起。你感到体内灵气剧烈波动，九叶灵芝本体开始显现...",
    ),
    ForcedEvent(
        id="three-way-choice",
        name="三方势力的选择",
        trigger_day=18,
        trigger_period=2,
        description="丹辰子、叶青霜、赤璃同时向你抛出橄榄枝。你必须做出选择——或者谁也不信。",
    ),
    ForcedEvent(
        id="pool-clue",
        name="化形池线索",
        trigger_day=22,
        description="三块玉片合在一起发出柔和光芒，浮现出一幅地图，指向万妖森林最深处。",
    ),
    ForcedEvent(
        id="yeqingshuang-truth",
        name="叶青霜真实身份",
        trigger_day=25,
        trigger_period=4,
        description="叶青霜终于向你坦白——\"我和你一样，也是灵草成精。百年前的七叶雪莲...\"",
    ),
]


# ── Endings (listed in evaluation priority) ──────────────

ENDINGS: list[Ending] = [
    Ending(
        id="be-alchemy",
        name="丹炉中的永生",
        type="BE",
        description="你被丹辰子炼成了九转还魂丹。奇怪的是你并没有死——你的意识被困在丹药中，永远感受着被吞噬的痛苦。",
        condition="丹辰子觊觎度达到100",
        requires=EndingCondition(
            stats_at_least=[StatRequirement(char_id="danchenzi", key="coveting", min=STAT_MAX)],
            immediate=True,
        ),
    ),
    Ending(
        id="be-prey",
        name="猎物的末路",
        type="BE",
        description="你在朔月之夜暴露了本体，被闻讯而来的修士们分食。你的最后一丝意识，是感受着身体被撕裂的痛苦。",
        condition="朔月之夜暴露且无人庇护",
        requires=EndingCondition(
            special_night=True,
            stats_below=[
                StatRequirement(char_id="yeqingshuang", key="affection", min=30),
                StatRequirement(char_id="yeqingshuang", key="trust", min=30),
                StatRequirement(char_id="chili", key="affection", min=30),
            ],
            events_absent=[NEW_MOON_SHELTER_EVENT],
        ),
    ),
    Ending(
        id="te-true-person",
        name="真正的人",
        type="TE",
        description=(
            "你在最后一刻拒绝了化形池，选择以灵草之身继续做人。叶青霜告诉你另一个方法——"
            "用百年时间慢慢修炼，最终可以真正化形。虽然漫长，但你是自由的。"
        ),
        condition="叶青霜好感≥80 且 信任≥60 且 集齐化形池线索碎片 且 触发叶青霜真实身份",
        requires=EndingCondition(
            stats_at_least=[
                StatRequirement(char_id="yeqingshuang", key="affection", min=80),
                StatRequirement(char_id="yeqingshuang", key="trust", min=60),
            ],
            min_fragments=FRAGMENTS_NEEDED,
            events_required=["yeqingshuang-truth"],
        ),
    ),
    Ending(
        id="he-demon-flower",
        name="妖界之花",
        type="HE",
        description=(
            "你接受了赤璃的提议，进入化形池。你失去了人形，但获得了真正的自由。"
            "在妖界你不再是\"药\"，而是被尊敬的\"妖\"。你和赤璃一起，守护着妖界的边界。"
        ),
        condition="赤璃好感≥80 且 同化≥60",
        requires=EndingCondition(
            stats_at_least=[
                StatRequirement(char_id="chili", key="affection", min=80),
                StatRequirement(char_id="chili", key="assimilation", min=60),
            ],
        ),
    ),
    Ending(
        id="ne-half",
        name="半人半草",
        type="NE",
        description="你离开了化形池，继续在修仙界流浪。既没有成为真正的人，也没有成为妖。这种生活很艰难，但你还在坚持。",
        condition="其他结局均未达成",
    ),
]

ENDINGS_BY_ID: dict[str, Ending] = {e.id: e for e in ENDINGS}


# ── Opening + fallback text ──────────────────────────────

WELCOME_TEMPLATE = (
    "天元历三千七百年，一株千年九叶灵芝终于化形成人。\n\n"
    "你睁开眼睛，第一次以人类的视角打量这个世界。空气中弥漫着自己身上的药香，洞顶的裂缝透进一缕微弱的光线。\n\n"
    "你叫「{name}」，从今天起，你要学会在修仙界生存。"
)

INITIAL_CHOICES = ["探索山洞深处", "走出洞口看看外面", "端详自己的人形身体", "闭目感受体内灵气"]

CHARACTER_FALLBACKS = [
    "【{name}】（看了看你，微微挑眉）\"嗯？\"",
    "【{name}】（负手而立）\"风起了。\"",
    "【{name}】（目光深远）\"你的灵气...有些不稳。\"",
]

SCENE_FALLBACKS = [
    "山风穿过洞口，带来一阵草木的清香。空气中弥漫着你自己的药香。",
    "远处传来鸟鸣声，落霞山脉的天空被晚霞染成了金红色。",
    "洞顶的裂缝透进一缕月光，你感到体内的灵气微微波动。",
]

# Used when every narrator attempt failed outright.
ERROR_FALLBACK_CHARACTER = "【{name}】（似乎感知到了什么）\"...风向变了。\""
ERROR_FALLBACK_SCENE = "一阵灵气波动掠过，山洞中的青苔微微发光。"

NEW_MOON_ANNOUNCEMENT = "朔月之夜降临！月亮不会升起。你感到体内灵气剧烈波动..."

CHARACTER_CHOICES = ["继续和{name}交谈", "试探{name}的真实目的", "向{name}寻求帮助", "换个话题"]

SCENE_CHOICES = ["探索{scene}", "寻找化形池线索", "查看周围环境", "使用隐匿符掩盖气息"]


# ── Lookups ──────────────────────────────────────────────


def stat_level(value: int) -> tuple[int, str]:
    """Relationship tier shared by every positive stat."""
    if value >= 80:
        return 4, "深度羁绊"
    if value >= 60:
        return 3, "关系亲密"
    if value >= 30:
        return 2, "逐渐了解"
    return 1, "初步接触"


def visible_characters(day: int, characters: dict[str, Character]) -> dict[str, Character]:
    """Characters whose join_day has been reached."""
    return {cid: c for cid, c in characters.items() if c.join_day <= day}


def chapter_for_day(day: int) -> Chapter:
    for chapter in CHAPTERS:
        if chapter.contains(day):
            return chapter
    return CHAPTERS[0] if day < CHAPTERS[0].day_range[0] else CHAPTERS[-1]


def period(index: int) -> TimePeriod:
    if 0 <= index < len(PERIODS):
        return PERIODS[index]
    return PERIODS[0]


def item_by_name(name: str) -> Item | None:
    for item in ITEMS.values():
        if item.name == name:
            return item
    return None
