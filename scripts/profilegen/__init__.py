"""v2ray 配置预处理：路由规则编译与订阅解码。"""
