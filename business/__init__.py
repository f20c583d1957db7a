"""业务层

在 database 仓库之上实现门店的核心业务规则：可预约时段、预约写入、
会员次数、结算、提成发放、会员订阅与预约提醒。
"""
